"""Persisted snapshot of every entity collection."""
from typing import Callable, Dict, List, TypeVar

from pydantic import BaseModel, Field

from .activity import ActivityEntry
from .application import Application, MonitorGroup
from .contact import Contact, ContactGroup
from .endpoint import Endpoint
from .incident import Alert, Incident
from .settings import MonitoringSettings
from .status import Status

# Retention applied in memory and when a snapshot is written
INCIDENT_RETENTION = 1000
ALERT_RETENTION = 500

T = TypeVar("T")


def retained(items: List[T], limit: int, pinned: Callable[[T], bool]) -> List[T]:
    """Keep the first ``limit`` items plus any older item that is still pinned."""
    if len(items) <= limit:
        return list(items)
    return items[:limit] + [item for item in items[limit:] if pinned(item)]


def incident_is_open(incident: Incident) -> bool:
    return incident.status == "ongoing"


def alert_is_open(alert: Alert) -> bool:
    return alert.status != "resolved"


class Snapshot(BaseModel):
    """Everything the monitoring core loads at startup and saves on change."""
    applications: List[Application] = Field(default_factory=list)
    groups: List[MonitorGroup] = Field(default_factory=list)
    endpoints: List[Endpoint] = Field(default_factory=list)
    statuses: Dict[str, Status] = Field(default_factory=dict)
    contacts: List[Contact] = Field(default_factory=list)
    contact_groups: List[ContactGroup] = Field(default_factory=list)
    incidents: List[Incident] = Field(default_factory=list)  # Most recent first
    alerts: List[Alert] = Field(default_factory=list)  # Most recent first
    activity: List[ActivityEntry] = Field(default_factory=list)
    settings: MonitoringSettings = Field(default_factory=MonitoringSettings)

    def trimmed(self) -> "Snapshot":
        """Copy with incidents and alerts cut to retention. Open ones are never dropped."""
        return self.model_copy(update={
            "incidents": retained(self.incidents, INCIDENT_RETENTION, incident_is_open),
            "alerts": retained(self.alerts, ALERT_RETENTION, alert_is_open),
        })


# Snapshot field -> stored row key
COLLECTIONS = tuple(Snapshot.model_fields.keys())
