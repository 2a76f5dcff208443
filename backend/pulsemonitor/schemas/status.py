"""Status, history and overview schemas."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..utils.clock import utcnow

# Bounded history window kept on each Status
HISTORY_LIMIT = 100


class SslInfo(BaseModel):
    """TLS certificate validity window for an HTTPS endpoint."""
    issuer: str = "Unknown"
    subject: Optional[str] = None
    valid_from: datetime
    valid_to: datetime
    days_remaining: int


class HistoryEntry(BaseModel):
    """A single check sample."""
    timestamp: datetime
    status: Literal["UP", "DOWN"]
    response_time_ms: Optional[int] = None
    message: Optional[str] = None


class Status(BaseModel):
    """Derived health state and counters for one endpoint."""
    status: Literal["PENDING", "UP", "DOWN"] = "PENDING"
    response_time_ms: Optional[int] = None
    message: Optional[str] = None
    last_check: Optional[datetime] = None
    consecutive_failures: int = 0
    total_checks: int = 0
    successful_checks: int = 0
    history: List[HistoryEntry] = Field(default_factory=list)  # Most recent first
    ssl_info: Optional[SslInfo] = None


class NetworkSelfStatus(BaseModel):
    """Reachability of the host's own network."""
    is_connected: bool = True
    last_checked: datetime = Field(default_factory=utcnow)
    last_connected_at: Optional[datetime] = Field(default_factory=utcnow)


class EndpointCounts(BaseModel):
    total: int
    enabled: int
    up: int
    down: int
    pending: int


class StatsOverview(BaseModel):
    """Dashboard overview data."""
    endpoints: EndpointCounts
    applications: int = 0
    groups: int = 0
    contacts: int
    active_alerts: int
    total_alerts: int
    ongoing_incidents: int
    total_incidents: int
    uptime_percent: float
    avg_response_time_ms: int
    started_at: datetime


class CheckResultResponse(BaseModel):
    """Outcome of a one-off or immediate check."""
    status: Literal["UP", "DOWN"]
    response_time_ms: Optional[int] = None
    message: Optional[str] = None
    status_code: Optional[int] = None
    ssl_info: Optional[SslInfo] = None
