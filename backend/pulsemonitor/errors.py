"""Error types surfaced to callers of the monitoring core."""
from typing import List, Optional


class PulseMonitorError(Exception):
    """Base class for errors raised by the monitoring core."""


class ConfigurationError(PulseMonitorError):
    """An endpoint, contact or settings payload failed validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Invalid configuration")


class NotFoundError(PulseMonitorError):
    """An operation referenced an entity id that does not exist."""

    def __init__(self, entity_type: str, entity_id: Optional[str]):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ConflictError(PulseMonitorError):
    """An operation would break an invariant, e.g. a second ongoing incident."""


class PersistenceError(PulseMonitorError):
    """Snapshot load or save failed."""
