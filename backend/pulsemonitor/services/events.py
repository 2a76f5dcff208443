"""Change-event stream for the transport layer."""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Set

from ..utils.clock import utcnow

logger = logging.getLogger(__name__)

# Event types
STATUS_UPDATE = "status_update"
STATUS_CHANGE = "status_change"
INCIDENT_OPENED = "incident_opened"
INCIDENT_RESOLVED = "incident_resolved"
ALERT_CREATED = "alert_created"
ALERT_ACKNOWLEDGED = "alert_acknowledged"
ALERT_RESOLVED = "alert_resolved"
ENDPOINT_CREATED = "endpoint_created"
ENDPOINT_UPDATED = "endpoint_updated"
ENDPOINT_DELETED = "endpoint_deleted"
CONTACTS_UPDATED = "contacts_updated"
SETTINGS_UPDATED = "settings_updated"
NETWORK_STATUS = "network_status"
APPLICATIONS_UPDATED = "applications_updated"
GROUPS_UPDATED = "groups_updated"
DATA_IMPORTED = "data_imported"


@dataclass
class ChangeEvent:
    """A state transition worth pushing to clients."""
    type: str
    data: Dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)

    def to_message(self) -> Dict[str, Any]:
        return {"type": self.type, "data": self.data, "timestamp": self.timestamp.isoformat()}


Listener = Callable[[ChangeEvent], Any]


class EventBus:
    """Fan-out of change events to listeners.

    Listeners may be plain callables or coroutine functions. Coroutine
    listeners run as background tasks so publishing never waits on a slow
    client.
    """

    def __init__(self):
        self._listeners: List[Listener] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, listener: Listener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def publish(self, event_type: str, data: Dict[str, Any]) -> ChangeEvent:
        event = ChangeEvent(type=event_type, data=data)
        for listener in list(self._listeners):
            try:
                result = listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {event_type}: {e}")
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._on_done)
        return event

    def _on_done(self, task: asyncio.Task):
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Event listener failed: {task.exception()}")

    async def drain(self):
        """Wait for in-flight listener tasks."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
