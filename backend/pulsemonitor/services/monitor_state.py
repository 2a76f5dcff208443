"""Monitor state - the in-memory registry behind the scheduler and the API.

Owns every entity collection, applies check results through the transition
rules in ``state_machine``, keeps the incident/alert invariants, logs
activity, publishes change events and schedules snapshot saves.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..errors import ConfigurationError, ConflictError, NotFoundError, PersistenceError
from ..schemas.activity import ACTIVITY_LIMIT, ActivityEntry
from ..schemas.application import Application, ApplicationHealth, MemberHealth, MonitorGroup
from ..schemas.contact import Contact, ContactGroup
from ..schemas.endpoint import SECRET_FIELDS, masked
from ..schemas.incident import Alert, Incident, IncidentUpdate
from ..schemas.settings import MonitoringSettings
from ..schemas.snapshot import (
    ALERT_RETENTION,
    INCIDENT_RETENTION,
    Snapshot,
    alert_is_open,
    incident_is_open,
    retained,
)
from ..schemas.status import EndpointCounts, NetworkSelfStatus, StatsOverview, Status
from ..utils.clock import utcnow
from . import events
from .checker import CheckResult
from .events import EventBus
from .persistence import SnapshotStore
from .recipients import Recipients, resolve_recipients
from .state_machine import Transition, apply_check
from .validation import validate_endpoint, validate_model

logger = logging.getLogger(__name__)

# Reserved endpoint id for the host's own network reachability
NETWORK_ENDPOINT_ID = "NETWORK"
NETWORK_ENDPOINT_NAME = "Network connectivity"

EXPORT_VERSION = "1.0"
IMPORT_SECTIONS = ("applications", "groups", "endpoints", "contacts", "contact_groups")


@dataclass
class CheckOutcome:
    """What recording one check result changed."""
    transition: Transition
    incident: Optional[Incident] = None  # Newly opened
    alert: Optional[Alert] = None  # Created with the incident
    resolved_incident: Optional[Incident] = None
    resolved_alerts: List[Alert] = field(default_factory=list)

    @property
    def recovered(self) -> bool:
        return self.transition.previous_status == "DOWN" and self.transition.status.status == "UP"


class MonitorState:
    """Registry of every entity collection: endpoints and their applications and
    groups, statuses, contacts, incidents, alerts and settings.
    """

    def __init__(self, store: Optional[SnapshotStore] = None, event_bus: Optional[EventBus] = None):
        self.store = store
        self.events = event_bus or EventBus()
        self.started_at = utcnow()
        self.network = NetworkSelfStatus()

        self._applications: Dict[str, Application] = {}
        self._groups: Dict[str, MonitorGroup] = {}
        self._endpoints: Dict[str, Any] = {}
        self._statuses: Dict[str, Status] = {}
        self._contacts: Dict[str, Contact] = {}
        self._contact_groups: Dict[str, ContactGroup] = {}
        self._incidents: List[Incident] = []  # Most recent first
        self._alerts: List[Alert] = []  # Most recent first
        self._activity: List[ActivityEntry] = []  # Most recent first
        self._settings = MonitoringSettings()

        # Serialises result application per endpoint
        self._endpoint_locks: Dict[str, asyncio.Lock] = {}
        # Guards the incident/alert collections across endpoints
        self._lock = asyncio.Lock()

        self._save_task: Optional[asyncio.Task] = None
        self._dirty = False

    # ==================== PERSISTENCE ====================

    async def load(self) -> None:
        """Hydrate from the store. Failures leave the default empty state."""
        if self.store is None:
            return
        self.hydrate(await self.store.load_all())

    def hydrate(self, snapshot: Snapshot) -> None:
        snapshot = snapshot.trimmed()
        self._applications = {app.id: app for app in snapshot.applications}
        self._groups = {group.id: group for group in snapshot.groups}
        self._endpoints = {endpoint.id: endpoint for endpoint in snapshot.endpoints}
        self._statuses = {
            endpoint_id: snapshot.statuses.get(endpoint_id, Status())
            for endpoint_id in self._endpoints
        }
        self._contacts = {contact.id: contact for contact in snapshot.contacts}
        self._contact_groups = {group.id: group for group in snapshot.contact_groups}
        self._incidents = list(snapshot.incidents)
        self._alerts = list(snapshot.alerts)
        self._activity = list(snapshot.activity)[:ACTIVITY_LIMIT]
        self._settings = snapshot.settings

    def snapshot(self) -> Snapshot:
        return Snapshot(
            applications=list(self._applications.values()),
            groups=list(self._groups.values()),
            endpoints=list(self._endpoints.values()),
            statuses=dict(self._statuses),
            contacts=list(self._contacts.values()),
            contact_groups=list(self._contact_groups.values()),
            incidents=list(self._incidents),
            alerts=list(self._alerts),
            activity=list(self._activity),
            settings=self._settings,
        )

    def request_save(self) -> None:
        """Schedule a snapshot save without waiting for it.

        Saves requested while one is running are coalesced into one more.
        """
        if self.store is None:
            return
        self._dirty = True
        if self._save_task is not None and not self._save_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # No loop yet; flush() persists the pending change
        self._save_task = loop.create_task(self._save_pending())

    async def _save_pending(self) -> None:
        while self._dirty:
            self._dirty = False
            try:
                await self.store.save_all(self.snapshot())
            except PersistenceError as e:
                logger.error(str(e))

    async def flush(self) -> None:
        """Wait until every requested save has been written."""
        if self._save_task is not None:
            await self._save_task
        if self._dirty and self.store is not None:
            await self._save_pending()

    # ==================== ACTIVITY ====================

    def add_activity(
        self,
        action: str,
        entity_type: str,
        entity_id: Optional[str],
        entity_name: Optional[str] = None,
        **details,
    ) -> ActivityEntry:
        entry = ActivityEntry(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            details=details,
        )
        self._activity.insert(0, entry)
        del self._activity[ACTIVITY_LIMIT:]
        return entry

    def get_activity(
        self,
        limit: int = 100,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        action: Optional[str] = None,
    ) -> List[ActivityEntry]:
        entries = self._activity
        if entity_type:
            entries = [e for e in entries if e.entity_type == entity_type]
        if entity_id:
            entries = [e for e in entries if e.entity_id == entity_id]
        if action:
            entries = [e for e in entries if e.action == action]
        return entries[:limit]

    # ==================== ENDPOINTS ====================

    def endpoint_lock(self, endpoint_id: str) -> asyncio.Lock:
        lock = self._endpoint_locks.get(endpoint_id)
        if lock is None:
            lock = self._endpoint_locks[endpoint_id] = asyncio.Lock()
        return lock

    def has_endpoint(self, endpoint_id: str) -> bool:
        return endpoint_id in self._endpoints

    def get_endpoint(self, endpoint_id: str):
        """Endpoint including credentials, for probes."""
        endpoint = self._endpoints.get(endpoint_id)
        if endpoint is None:
            raise NotFoundError("endpoint", endpoint_id)
        return endpoint

    def get_endpoints(self) -> List[Any]:
        return list(self._endpoints.values())

    def get_enabled_endpoints(self) -> List[Any]:
        return [endpoint for endpoint in self._endpoints.values() if endpoint.enabled]

    def endpoints_snapshot(self) -> List[Dict[str, Any]]:
        """Endpoints for clients, credentials masked."""
        return [masked(endpoint) for endpoint in self._endpoints.values()]

    def create_endpoint(self, data: Dict[str, Any]):
        """Validate and register a new endpoint with a PENDING status.

        Raises:
            ConfigurationError: If required fields for its type are missing or it
                references an unknown application or group
        """
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")}
        endpoint = validate_endpoint(payload)
        self._check_references(endpoint)
        self._endpoints[endpoint.id] = endpoint
        self._statuses[endpoint.id] = Status()

        self.add_activity("create", "endpoint", endpoint.id, endpoint.name, type=endpoint.type)
        logger.info(f"Endpoint created: {endpoint.name} ({endpoint.type})")
        self.events.publish(events.ENDPOINT_CREATED, masked(endpoint))
        self.request_save()
        return endpoint

    def update_endpoint(self, endpoint_id: str, changes: Dict[str, Any]):
        """Apply a partial update. Masked secrets ('***') keep their old value.

        Raises:
            NotFoundError: If the endpoint does not exist
            ConfigurationError: If the merged definition is invalid
        """
        current = self.get_endpoint(endpoint_id)
        changes = {
            key: value
            for key, value in changes.items()
            if key not in ("id", "created_at", "updated_at")
            and not (key in SECRET_FIELDS and value == "***")
        }
        merged = {**current.model_dump(), **changes, "id": endpoint_id, "updated_at": utcnow()}
        endpoint = validate_endpoint(merged)
        self._check_references(endpoint)
        self._endpoints[endpoint_id] = endpoint

        self.add_activity(
            "update", "endpoint", endpoint_id, endpoint.name,
            changes=sorted(changes.keys()),
        )
        logger.info(f"Endpoint updated: {endpoint.name}")
        self.events.publish(events.ENDPOINT_UPDATED, masked(endpoint))
        self.request_save()
        return endpoint

    def delete_endpoint(self, endpoint_id: str) -> None:
        """Remove an endpoint and its status. Its incidents stay as history.

        Raises:
            NotFoundError: If the endpoint does not exist
        """
        endpoint = self.get_endpoint(endpoint_id)
        del self._endpoints[endpoint_id]
        self._statuses.pop(endpoint_id, None)
        self._endpoint_locks.pop(endpoint_id, None)

        self.add_activity("delete", "endpoint", endpoint_id, endpoint.name)
        logger.info(f"Endpoint deleted: {endpoint.name}")
        self.events.publish(events.ENDPOINT_DELETED, {"id": endpoint_id})
        self.request_save()

    def _check_references(self, endpoint) -> None:
        errors = []
        if endpoint.application_id and endpoint.application_id not in self._applications:
            errors.append(f"Unknown application id: {endpoint.application_id}")
        if endpoint.group_id and endpoint.group_id not in self._groups:
            errors.append(f"Unknown group id: {endpoint.group_id}")
        if errors:
            raise ConfigurationError(errors)

    def _set_membership(self, endpoint, **fields):
        endpoint = endpoint.model_copy(update={**fields, "updated_at": utcnow()})
        self._endpoints[endpoint.id] = endpoint
        self.events.publish(events.ENDPOINT_UPDATED, masked(endpoint))
        return endpoint

    # ==================== APPLICATIONS ====================

    def get_applications(self) -> List[Application]:
        return list(self._applications.values())

    def get_application(self, application_id: str) -> Application:
        application = self._applications.get(application_id)
        if application is None:
            raise NotFoundError("application", application_id)
        return application

    def get_application_endpoints(self, application_id: str) -> List[Any]:
        self.get_application(application_id)
        return [e for e in self._endpoints.values() if e.application_id == application_id]

    def create_application(self, data: Dict[str, Any]) -> Application:
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")}
        application = validate_model(Application, payload)
        self._applications[application.id] = application
        self.add_activity("create", "application", application.id, application.name)
        logger.info(f"Application created: {application.name}")
        self._applications_changed()
        return application

    def update_application(self, application_id: str, changes: Dict[str, Any]) -> Application:
        current = self.get_application(application_id)
        merged = {**current.model_dump(), **changes, "id": application_id,
                  "created_at": current.created_at, "updated_at": utcnow()}
        application = validate_model(Application, merged)
        self._applications[application_id] = application
        self.add_activity("update", "application", application_id, application.name,
                          changes=sorted(changes.keys()))
        self._applications_changed()
        return application

    def delete_application(self, application_id: str) -> None:
        """Delete an application. Its endpoints stay, unassigned."""
        application = self.get_application(application_id)
        for endpoint in self.get_application_endpoints(application_id):
            self._set_membership(endpoint, application_id=None)
        del self._applications[application_id]
        self.add_activity("delete", "application", application_id, application.name)
        logger.info(f"Application deleted: {application.name}")
        self._applications_changed()

    def add_endpoint_to_application(self, application_id: str, endpoint_id: str):
        """Move an endpoint into an application, leaving any previous one."""
        application = self.get_application(application_id)
        endpoint = self._set_membership(self.get_endpoint(endpoint_id), application_id=application_id)
        self.add_activity("link", "endpoint", endpoint_id, endpoint.name,
                          application_id=application_id, application_name=application.name)
        self.request_save()
        return endpoint

    def remove_endpoint_from_application(self, application_id: str, endpoint_id: str):
        """Raises NotFoundError if the endpoint is not a member."""
        application = self.get_application(application_id)
        endpoint = self.get_endpoint(endpoint_id)
        if endpoint.application_id != application_id:
            raise NotFoundError("application member", endpoint_id)
        endpoint = self._set_membership(endpoint, application_id=None)
        self.add_activity("unlink", "endpoint", endpoint_id, endpoint.name,
                          application_id=application_id, application_name=application.name)
        self.request_save()
        return endpoint

    def get_application_health(self, application_id: str) -> ApplicationHealth:
        """Roll the member statuses up into one health value."""
        application = self.get_application(application_id)
        members = []
        for endpoint in self.get_application_endpoints(application_id):
            status = self._statuses.get(endpoint.id) or Status()
            members.append(MemberHealth(
                id=endpoint.id,
                name=endpoint.name,
                type=endpoint.type,
                status=status.status,
                response_time_ms=status.response_time_ms,
                last_check=status.last_check,
            ))

        total = len(members)
        up = sum(1 for m in members if m.status == "UP")
        down = sum(1 for m in members if m.status == "DOWN")
        pending = total - up - down
        if down:
            health = "critical"
        elif pending:
            health = "warning"
        else:
            health = "healthy"

        return ApplicationHealth(
            application_id=application_id,
            name=application.name,
            health=health,
            total=total,
            up=up,
            down=down,
            pending=pending,
            uptime_percent=round(up / total * 100) if total else 0,
            members=members,
        )

    def _applications_changed(self) -> None:
        self.events.publish(events.APPLICATIONS_UPDATED, {"applications": len(self._applications)})
        self.request_save()

    # ==================== MONITOR GROUPS ====================

    def get_groups(self) -> List[MonitorGroup]:
        return list(self._groups.values())

    def get_group(self, group_id: str) -> MonitorGroup:
        group = self._groups.get(group_id)
        if group is None:
            raise NotFoundError("group", group_id)
        return group

    def get_group_endpoints(self, group_id: str) -> List[Any]:
        self.get_group(group_id)
        return [e for e in self._endpoints.values() if e.group_id == group_id]

    def create_group(self, data: Dict[str, Any]) -> MonitorGroup:
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")}
        group = validate_model(MonitorGroup, payload)
        self._groups[group.id] = group
        self.add_activity("create", "group", group.id, group.name)
        self._groups_changed()
        return group

    def update_group(self, group_id: str, changes: Dict[str, Any]) -> MonitorGroup:
        current = self.get_group(group_id)
        merged = {**current.model_dump(), **changes, "id": group_id,
                  "created_at": current.created_at, "updated_at": utcnow()}
        group = validate_model(MonitorGroup, merged)
        self._groups[group_id] = group
        self.add_activity("update", "group", group_id, group.name, changes=sorted(changes.keys()))
        self._groups_changed()
        return group

    def delete_group(self, group_id: str) -> None:
        """Delete a group. Its endpoints stay, ungrouped."""
        group = self.get_group(group_id)
        for endpoint in self.get_group_endpoints(group_id):
            self._set_membership(endpoint, group_id=None)
        del self._groups[group_id]
        self.add_activity("delete", "group", group_id, group.name)
        self._groups_changed()

    def _groups_changed(self) -> None:
        self.events.publish(events.GROUPS_UPDATED, {"groups": len(self._groups)})
        self.request_save()

    # ==================== STATUSES ====================

    def get_status(self, endpoint_id: str) -> Status:
        status = self._statuses.get(endpoint_id)
        if status is None:
            raise NotFoundError("status", endpoint_id)
        return status

    def get_statuses(self) -> Dict[str, Status]:
        return dict(self._statuses)

    async def record_check(self, endpoint_id: str, result: CheckResult) -> Optional[CheckOutcome]:
        """Apply one check result to an endpoint.

        Returns None (and changes nothing) if the endpoint no longer exists.
        """
        async with self._lock:
            endpoint = self._endpoints.get(endpoint_id)
            if endpoint is None:
                logger.debug(f"Ignoring result for deleted endpoint {endpoint_id}")
                return None

            now = utcnow()
            ongoing = self.get_ongoing_incident(endpoint_id)
            transition = apply_check(
                previous=self._statuses.get(endpoint_id),
                result=result,
                has_ongoing_incident=ongoing is not None,
                threshold=self._settings.consecutive_failures_threshold,
                auto_resolve=self._settings.auto_resolve,
                now=now,
            )
            self._statuses[endpoint_id] = transition.status
            outcome = CheckOutcome(transition=transition)

            if transition.status_changed:
                self.add_activity(
                    "status_change", "endpoint", endpoint_id, endpoint.name,
                    previous_status=transition.previous_status,
                    new_status=transition.status.status,
                    response_time_ms=result.response_time_ms,
                    message=result.message,
                )

            if transition.open_incident:
                outcome.incident, outcome.alert = self._open_incident(
                    endpoint_id, endpoint.name, result.message or "Check failed",
                )
            elif transition.resolve_incident:
                outcome.resolved_incident, outcome.resolved_alerts = self._resolve_for_endpoint(
                    endpoint_id, "Service recovered",
                )

        status_data = {"endpoint_id": endpoint_id, **transition.status.model_dump(mode="json", exclude={"history"})}
        self.events.publish(events.STATUS_UPDATE, status_data)
        if transition.status_changed:
            self.events.publish(events.STATUS_CHANGE, {
                "endpoint_id": endpoint_id,
                "endpoint_name": endpoint.name,
                "previous_status": transition.previous_status,
                "status": transition.status.status,
                "message": result.message,
            })
        self.request_save()
        return outcome

    # ==================== INCIDENTS & ALERTS ====================

    def get_ongoing_incident(self, endpoint_id: str) -> Optional[Incident]:
        for incident in self._incidents:
            if incident.endpoint_id == endpoint_id and incident.status == "ongoing":
                return incident
        return None

    def get_incidents(self, limit: int = 100, endpoint_id: Optional[str] = None) -> List[Incident]:
        incidents = self._incidents
        if endpoint_id:
            incidents = [i for i in incidents if i.endpoint_id == endpoint_id]
        return incidents[:limit]

    def get_incident(self, incident_id: str) -> Incident:
        for incident in self._incidents:
            if incident.id == incident_id:
                return incident
        raise NotFoundError("incident", incident_id)

    def get_alerts(self, status: Optional[str] = None) -> List[Alert]:
        if status:
            return [a for a in self._alerts if a.status == status]
        return list(self._alerts)

    def get_active_alerts(self) -> List[Alert]:
        return self.get_alerts("active")

    def get_alert(self, alert_id: str) -> Alert:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        raise NotFoundError("alert", alert_id)

    def open_incident(
        self,
        endpoint_id: str,
        message: str,
        alert_type: str = "incident",
        endpoint_name: Optional[str] = None,
    ) -> Tuple[Incident, Alert]:
        """Open an incident and its critical alert.

        Raises:
            ConflictError: If the endpoint already has an ongoing incident
        """
        if endpoint_name is None:
            endpoint = self._endpoints.get(endpoint_id)
            endpoint_name = endpoint.name if endpoint else "Unknown"
        incident, alert = self._open_incident(endpoint_id, endpoint_name, message, alert_type)
        self.request_save()
        return incident, alert

    def _open_incident(
        self,
        endpoint_id: str,
        endpoint_name: str,
        message: str,
        alert_type: str = "incident",
    ) -> Tuple[Incident, Alert]:
        if self.get_ongoing_incident(endpoint_id) is not None:
            raise ConflictError(f"Endpoint {endpoint_id} already has an ongoing incident")

        now = utcnow()
        incident = Incident(
            endpoint_id=endpoint_id,
            endpoint_name=endpoint_name,
            message=message,
            started_at=now,
            updates=[IncidentUpdate(timestamp=now, status="started", message=f"Incident detected: {message}")],
        )
        self._incidents.insert(0, incident)
        self._incidents = retained(self._incidents, INCIDENT_RETENTION, incident_is_open)

        alert = Alert(
            endpoint_id=endpoint_id,
            endpoint_name=endpoint_name,
            type=alert_type,
            message=message,
            severity="critical",
            created_at=now,
        )
        self._alerts.insert(0, alert)
        self._alerts = retained(self._alerts, ALERT_RETENTION, alert_is_open)

        self.add_activity("incident_created", "endpoint", endpoint_id, endpoint_name,
                          incident_id=incident.id, message=message)
        self.add_activity("alert_created", "endpoint", endpoint_id, endpoint_name,
                          alert_id=alert.id, severity=alert.severity, type=alert_type)
        logger.error(f"Incident started: {endpoint_name} - {message}")

        self.events.publish(events.INCIDENT_OPENED, incident.model_dump(mode="json"))
        self.events.publish(events.ALERT_CREATED, alert.model_dump(mode="json"))
        return incident, alert

    def resolve_incidents_for_endpoint(
        self, endpoint_id: str, message: str = "Service recovered"
    ) -> Tuple[Optional[Incident], List[Alert]]:
        """Resolve the endpoint's ongoing incident and its active alerts.

        Acknowledged alerts keep their state until resolved by hand.
        """
        resolved = self._resolve_for_endpoint(endpoint_id, message)
        self.request_save()
        return resolved

    def _resolve_for_endpoint(self, endpoint_id: str, message: str) -> Tuple[Optional[Incident], List[Alert]]:
        now = utcnow()
        incident = self.get_ongoing_incident(endpoint_id)
        if incident is not None:
            self._close_incident(incident, message, now)

        resolved_alerts = []
        for alert in self._alerts:
            if alert.endpoint_id == endpoint_id and alert.status == "active":
                self._mark_alert_resolved(alert, now)
                resolved_alerts.append(alert)
        return incident, resolved_alerts

    def resolve_incident(self, incident_id: str) -> Incident:
        """Close an incident by hand. Its alerts keep their own lifecycle.

        Raises:
            NotFoundError: If the incident does not exist
        """
        incident = self.get_incident(incident_id)
        if incident.status == "ongoing":
            self._close_incident(incident, "Resolved manually", utcnow())
            self.request_save()
        return incident

    def _close_incident(self, incident: Incident, message: str, now) -> None:
        incident.status = "resolved"
        incident.resolved_at = now
        incident.duration_ms = int((now - incident.started_at).total_seconds() * 1000)
        incident.updates.append(IncidentUpdate(timestamp=now, status="resolved", message=message))

        self.add_activity("incident_resolved", "endpoint", incident.endpoint_id, incident.endpoint_name,
                          incident_id=incident.id, duration_ms=incident.duration_ms)
        logger.info(f"Incident resolved: {incident.endpoint_name}")
        self.events.publish(events.INCIDENT_RESOLVED, incident.model_dump(mode="json"))

    def _mark_alert_resolved(self, alert: Alert, now) -> None:
        alert.status = "resolved"
        alert.resolved_at = now
        self.add_activity("alert_resolved", "endpoint", alert.endpoint_id, alert.endpoint_name, alert_id=alert.id)
        self.events.publish(events.ALERT_RESOLVED, alert.model_dump(mode="json"))

    def acknowledge_alert(self, alert_id: str) -> Alert:
        """Mark an active alert as acknowledged. Resolved alerts are left as is.

        Raises:
            NotFoundError: If the alert does not exist
        """
        alert = self.get_alert(alert_id)
        if alert.status != "active":
            return alert
        alert.status = "acknowledged"
        alert.acknowledged_at = utcnow()
        self.add_activity("alert_acknowledged", "endpoint", alert.endpoint_id, alert.endpoint_name, alert_id=alert.id)
        self.events.publish(events.ALERT_ACKNOWLEDGED, alert.model_dump(mode="json"))
        self.request_save()
        return alert

    def resolve_alert(self, alert_id: str) -> Alert:
        """Resolve a single alert.

        Raises:
            NotFoundError: If the alert does not exist
        """
        alert = self.get_alert(alert_id)
        if alert.status != "resolved":
            self._mark_alert_resolved(alert, utcnow())
            self.request_save()
        return alert

    # ==================== CONTACTS ====================

    def get_contacts(self) -> List[Contact]:
        return list(self._contacts.values())

    def get_contact(self, contact_id: str) -> Contact:
        contact = self._contacts.get(contact_id)
        if contact is None:
            raise NotFoundError("contact", contact_id)
        return contact

    def create_contact(self, data: Dict[str, Any]) -> Contact:
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")}
        contact = validate_model(Contact, payload)
        self._contacts[contact.id] = contact
        self.add_activity("create", "contact", contact.id, contact.name)
        self._contacts_changed()
        return contact

    def update_contact(self, contact_id: str, changes: Dict[str, Any]) -> Contact:
        current = self.get_contact(contact_id)
        merged = {**current.model_dump(), **changes, "id": contact_id,
                  "created_at": current.created_at, "updated_at": utcnow()}
        contact = validate_model(Contact, merged)
        self._contacts[contact_id] = contact
        self.add_activity("update", "contact", contact_id, contact.name, changes=sorted(changes.keys()))
        self._contacts_changed()
        return contact

    def delete_contact(self, contact_id: str) -> None:
        """Delete a contact and drop it from every group."""
        contact = self.get_contact(contact_id)
        del self._contacts[contact_id]
        for group_id, group in list(self._contact_groups.items()):
            if contact_id in group.contact_ids:
                self._contact_groups[group_id] = group.model_copy(
                    update={"contact_ids": [cid for cid in group.contact_ids if cid != contact_id]}
                )
        self.add_activity("delete", "contact", contact_id, contact.name)
        self._contacts_changed()

    def get_contact_groups(self) -> List[ContactGroup]:
        return list(self._contact_groups.values())

    def get_contact_group(self, group_id: str) -> ContactGroup:
        group = self._contact_groups.get(group_id)
        if group is None:
            raise NotFoundError("contact_group", group_id)
        return group

    def create_contact_group(self, data: Dict[str, Any]) -> ContactGroup:
        payload = {k: v for k, v in data.items() if k not in ("id", "created_at", "updated_at")}
        group = validate_model(ContactGroup, payload)
        self._check_members(group.contact_ids)
        self._contact_groups[group.id] = group
        self.add_activity("create", "contact_group", group.id, group.name, members=len(group.contact_ids))
        self._contacts_changed()
        return group

    def update_contact_group(self, group_id: str, changes: Dict[str, Any]) -> ContactGroup:
        current = self.get_contact_group(group_id)
        merged = {**current.model_dump(), **changes, "id": group_id,
                  "created_at": current.created_at, "updated_at": utcnow()}
        group = validate_model(ContactGroup, merged)
        self._check_members(group.contact_ids)
        self._contact_groups[group_id] = group
        self.add_activity("update", "contact_group", group_id, group.name, changes=sorted(changes.keys()))
        self._contacts_changed()
        return group

    def delete_contact_group(self, group_id: str) -> None:
        group = self.get_contact_group(group_id)
        del self._contact_groups[group_id]
        self.add_activity("delete", "contact_group", group_id, group.name)
        self._contacts_changed()

    def get_contact_group_members(self, group_id: str) -> List[Contact]:
        group = self.get_contact_group(group_id)
        return [self._contacts[cid] for cid in group.contact_ids if cid in self._contacts]

    def add_contact_group_member(self, group_id: str, contact_id: str) -> ContactGroup:
        """Raises ConflictError if the contact is already a member."""
        group = self.get_contact_group(group_id)
        contact = self.get_contact(contact_id)
        if contact_id in group.contact_ids:
            raise ConflictError(f"Contact {contact_id} is already in group {group.name}")
        group = group.model_copy(update={"contact_ids": [*group.contact_ids, contact_id], "updated_at": utcnow()})
        self._contact_groups[group_id] = group
        self.add_activity("link", "contact", contact_id, contact.name, contact_group_id=group_id)
        self._contacts_changed()
        return group

    def remove_contact_group_member(self, group_id: str, contact_id: str) -> ContactGroup:
        """Raises NotFoundError if the contact is not a member."""
        group = self.get_contact_group(group_id)
        if contact_id not in group.contact_ids:
            raise NotFoundError("contact group member", contact_id)
        group = group.model_copy(update={
            "contact_ids": [cid for cid in group.contact_ids if cid != contact_id],
            "updated_at": utcnow(),
        })
        self._contact_groups[group_id] = group
        contact = self._contacts.get(contact_id)
        self.add_activity("unlink", "contact", contact_id, contact.name if contact else None,
                          contact_group_id=group_id)
        self._contacts_changed()
        return group

    def _check_members(self, contact_ids: List[str]) -> None:
        unknown = [cid for cid in contact_ids if cid not in self._contacts]
        if unknown:
            raise ConfigurationError([f"Unknown contact id: {cid}" for cid in unknown])

    def _contacts_changed(self) -> None:
        self.events.publish(events.CONTACTS_UPDATED, {
            "contacts": len(self._contacts),
            "contact_groups": len(self._contact_groups),
        })
        self.request_save()

    def resolve_recipients(self) -> Recipients:
        return resolve_recipients(self._contacts, self._contact_groups.values())

    # ==================== SETTINGS ====================

    def get_settings(self) -> MonitoringSettings:
        return self._settings

    def update_settings(self, changes: Dict[str, Any]) -> MonitoringSettings:
        """Merge a partial settings update. Masked secrets keep their value."""
        changes = {
            key: value for key, value in changes.items()
            if not (key in ("smtp_password", "sms_api_key") and value == "***")
        }
        self._settings = validate_model(MonitoringSettings, {**self._settings.model_dump(), **changes})
        self.add_activity("update", "settings", "system", changes=sorted(changes.keys()))
        logger.info(f"Settings updated: {', '.join(sorted(changes.keys()))}")
        self.events.publish(events.SETTINGS_UPDATED, self._settings.masked())
        self.request_save()
        return self._settings

    # ==================== NETWORK ====================

    def get_network_status(self) -> NetworkSelfStatus:
        return self.network

    def set_network_status(self, is_connected: bool) -> bool:
        """Record a self-check sample. Returns True if connectivity changed."""
        now = utcnow()
        changed = self.network.is_connected != is_connected
        self.network = NetworkSelfStatus(
            is_connected=is_connected,
            last_checked=now,
            last_connected_at=now if is_connected else self.network.last_connected_at,
        )
        if changed:
            self.add_activity(
                "status_change", "network", NETWORK_ENDPOINT_ID, NETWORK_ENDPOINT_NAME,
                new_status="CONNECTED" if is_connected else "DISCONNECTED",
            )
        self.events.publish(events.NETWORK_STATUS, self.network.model_dump(mode="json"))
        return changed

    # ==================== EXPORT / IMPORT ====================

    def export_data(self) -> Dict[str, Any]:
        """Configuration bundle for backup or migration. Credentials are left out."""
        return {
            "version": EXPORT_VERSION,
            "exported_at": utcnow().isoformat(),
            "applications": [a.model_dump(mode="json") for a in self._applications.values()],
            "groups": [g.model_dump(mode="json") for g in self._groups.values()],
            "endpoints": [
                e.model_dump(mode="json", exclude=set(SECRET_FIELDS)) for e in self._endpoints.values()
            ],
            "contacts": [c.model_dump(mode="json") for c in self._contacts.values()],
            "contact_groups": [g.model_dump(mode="json") for g in self._contact_groups.values()],
            "settings": self._settings.masked(),
        }

    def import_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge an exported bundle into the current state, upserting by id.

        Entries that fail validation are skipped and reported; the rest are
        applied. An endpoint without credentials keeps those of the existing
        endpoint with the same id. References to unknown applications, groups
        or contacts are dropped.

        Raises:
            ConfigurationError: If the bundle itself is malformed
        """
        problems = [f"{name} must be a list" for name in IMPORT_SECTIONS
                    if not isinstance(data.get(name) or [], list)]
        if not isinstance(data.get("settings") or {}, dict):
            problems.append("settings must be an object")
        if problems:
            raise ConfigurationError(problems)

        skipped: List[str] = []

        def build(section: str, factory) -> list:
            built = []
            for index, item in enumerate(data.get(section) or []):
                try:
                    if not isinstance(item, dict):
                        raise ConfigurationError(["entry must be an object"])
                    built.append(factory(item))
                except ConfigurationError as e:
                    skipped.extend(f"{section}[{index}]: {message}" for message in e.errors)
            return built

        applications = build("applications", lambda item: validate_model(Application, item))
        groups = build("groups", lambda item: validate_model(MonitorGroup, item))
        application_ids = set(self._applications) | {a.id for a in applications}
        group_ids = set(self._groups) | {g.id for g in groups}

        def endpoint_from(item):
            item = {k: v for k, v in item.items() if not (k in SECRET_FIELDS and v in ("***", None))}
            existing = self._endpoints.get(item.get("id"))
            for secret in SECRET_FIELDS:
                if secret not in item and getattr(existing, secret, None):
                    item[secret] = getattr(existing, secret)
            if item.get("application_id") not in application_ids:
                item["application_id"] = None
            if item.get("group_id") not in group_ids:
                item["group_id"] = None
            return validate_endpoint(item)

        endpoints = build("endpoints", endpoint_from)
        contacts = build("contacts", lambda item: validate_model(Contact, item))
        contact_ids = set(self._contacts) | {c.id for c in contacts}
        contact_groups = build("contact_groups", lambda item: validate_model(ContactGroup, {
            **item, "contact_ids": [cid for cid in item.get("contact_ids") or [] if cid in contact_ids],
        }))

        settings = None
        if data.get("settings"):
            changes = {k: v for k, v in data["settings"].items()
                       if not (k in ("smtp_password", "sms_api_key") and v in ("***", ""))}
            try:
                settings = validate_model(MonitoringSettings, {**self._settings.model_dump(), **changes})
            except ConfigurationError as e:
                skipped.extend(f"settings: {message}" for message in e.errors)

        for application in applications:
            self._applications[application.id] = application
        for group in groups:
            self._groups[group.id] = group
        for endpoint in endpoints:
            self._endpoints[endpoint.id] = endpoint
            self._statuses.setdefault(endpoint.id, Status())
        for contact in contacts:
            self._contacts[contact.id] = contact
        for contact_group in contact_groups:
            self._contact_groups[contact_group.id] = contact_group
        if settings is not None:
            self._settings = settings

        counts = {
            "applications": len(applications),
            "groups": len(groups),
            "endpoints": len(endpoints),
            "contacts": len(contacts),
            "contact_groups": len(contact_groups),
        }
        self.add_activity("import", "system", "system", skipped=len(skipped), **counts)
        logger.info(f"Data imported: {counts['endpoints']} endpoints, {counts['applications']} applications, "
                    f"{len(skipped)} entries skipped")
        self.events.publish(events.DATA_IMPORTED, counts)
        self.request_save()
        return {
            "imported": counts,
            "skipped": skipped,
            "endpoint_ids": [endpoint.id for endpoint in endpoints],
        }

    # ==================== STATS ====================

    def get_stats(self) -> StatsOverview:
        statuses = list(self._statuses.values())
        response_times = [s.response_time_ms for s in statuses if s.response_time_ms]
        total_checks = sum(s.total_checks for s in statuses)
        successful_checks = sum(s.successful_checks for s in statuses)

        return StatsOverview(
            endpoints=EndpointCounts(
                total=len(self._endpoints),
                enabled=len(self.get_enabled_endpoints()),
                up=sum(1 for s in statuses if s.status == "UP"),
                down=sum(1 for s in statuses if s.status == "DOWN"),
                pending=sum(1 for s in statuses if s.status == "PENDING"),
            ),
            applications=len(self._applications),
            groups=len(self._groups),
            contacts=len(self._contacts),
            active_alerts=len(self.get_active_alerts()),
            total_alerts=len(self._alerts),
            ongoing_incidents=sum(1 for i in self._incidents if i.status == "ongoing"),
            total_incidents=len(self._incidents),
            uptime_percent=round(successful_checks / total_checks * 100, 2) if total_checks else 0.0,
            avg_response_time_ms=int(sum(response_times) / len(response_times)) if response_times else 0,
            started_at=self.started_at,
        )
