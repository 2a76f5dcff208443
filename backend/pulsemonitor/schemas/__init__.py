"""Pydantic schemas for entities, snapshots and API payloads."""
from .endpoint import (
    Endpoint,
    EndpointUpdate,
    HttpEndpoint,
    IcmpEndpoint,
    SshEndpoint,
    TcpEndpoint,
    TelnetEndpoint,
)
from .status import Status, HistoryEntry, SslInfo, NetworkSelfStatus, StatsOverview
from .incident import Incident, IncidentUpdate, Alert
from .contact import Contact, ContactUpdate, ContactGroup, ContactGroupUpdate
from .settings import MonitoringSettings, SettingsUpdate
from .activity import ActivityEntry
from .application import Application, ApplicationHealth, ApplicationUpdate, MonitorGroup, MonitorGroupUpdate
from .snapshot import Snapshot

__all__ = [
    "Endpoint",
    "EndpointUpdate",
    "HttpEndpoint",
    "IcmpEndpoint",
    "SshEndpoint",
    "TcpEndpoint",
    "TelnetEndpoint",
    "Status",
    "HistoryEntry",
    "SslInfo",
    "NetworkSelfStatus",
    "StatsOverview",
    "Incident",
    "IncidentUpdate",
    "Alert",
    "Contact",
    "ContactUpdate",
    "ContactGroup",
    "ContactGroupUpdate",
    "MonitoringSettings",
    "SettingsUpdate",
    "ActivityEntry",
    "Application",
    "ApplicationHealth",
    "ApplicationUpdate",
    "MonitorGroup",
    "MonitorGroupUpdate",
    "Snapshot",
]
