"""Services for probing, scheduling, state tracking and notification."""
from .alerter import NotificationCooldown, NotificationDispatcher
from .checker import CheckerService, CheckResult
from .events import ChangeEvent, EventBus
from .monitor_state import NETWORK_ENDPOINT_ID, MonitorState
from .network_monitor import NetworkMonitor
from .persistence import SnapshotStore
from .scheduler import SchedulerService
from .websocket_manager import ConnectionManager

__all__ = [
    "ChangeEvent",
    "CheckResult",
    "CheckerService",
    "ConnectionManager",
    "EventBus",
    "MonitorState",
    "NETWORK_ENDPOINT_ID",
    "NetworkMonitor",
    "NotificationCooldown",
    "NotificationDispatcher",
    "SchedulerService",
    "SnapshotStore",
]
