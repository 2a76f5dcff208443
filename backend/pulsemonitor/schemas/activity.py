"""Activity log schema."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..utils.clock import new_id, utcnow

# Activity entries kept in memory and in the snapshot
ACTIVITY_LIMIT = 5000


class ActivityEntry(BaseModel):
    """Append-only record of a state transition or mutation."""
    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utcnow)
    action: str  # create, update, delete, status_change, incident_created, ...
    entity_type: str  # endpoint, contact, contact_group, alert, settings, network
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
