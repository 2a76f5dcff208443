"""Application and monitor group schemas.

Both organise endpoints. Membership is stored on the endpoint itself
(``application_id`` / ``group_id``), so an endpoint belongs to at most one of
each.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..utils.clock import new_id, utcnow


class Application(BaseModel):
    """A service made of several monitored endpoints."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    icon: str = "box"
    color: str = "#6366f1"
    tags: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ApplicationUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    tags: Optional[List[str]] = None


class MonitorGroup(BaseModel):
    """Folder for organising endpoints in the dashboard."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    icon: str = "folder"
    color: str = "#6366f1"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class MonitorGroupUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None


class MemberHealth(BaseModel):
    """One endpoint's line in an application health report."""
    id: str
    name: str
    type: str
    status: Literal["PENDING", "UP", "DOWN"] = "PENDING"
    response_time_ms: Optional[int] = None
    last_check: Optional[datetime] = None


class ApplicationHealth(BaseModel):
    """Rollup of member statuses.

    critical if any member is DOWN, else warning if any is PENDING, else
    healthy. ``uptime_percent`` is the share of members currently UP.
    """
    application_id: str
    name: str
    health: Literal["healthy", "warning", "critical"]
    total: int
    up: int
    down: int
    pending: int
    uptime_percent: int
    members: List[MemberHealth] = Field(default_factory=list)
