"""Incident and alert schemas."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..utils.clock import new_id, utcnow


class IncidentUpdate(BaseModel):
    """Timestamped note on an incident's timeline."""
    timestamp: datetime = Field(default_factory=utcnow)
    status: str  # started, resolved
    message: str


class Incident(BaseModel):
    """An outage record for one endpoint."""
    id: str = Field(default_factory=new_id)
    endpoint_id: str
    endpoint_name: str = "Unknown"
    status: Literal["ongoing", "resolved"] = "ongoing"
    message: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    updates: List[IncidentUpdate] = Field(default_factory=list)


class Alert(BaseModel):
    """A notifiable event with its own acknowledge/resolve lifecycle."""
    id: str = Field(default_factory=new_id)
    endpoint_id: str
    endpoint_name: str = "Unknown"
    type: str = "incident"  # incident, connectivity
    message: Optional[str] = None
    severity: Literal["critical", "warning", "info"] = "critical"
    status: Literal["active", "acknowledged", "resolved"] = "active"
    created_at: datetime = Field(default_factory=utcnow)
    acknowledged_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
