"""Alert and incident API endpoints."""
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from ..schemas.incident import Alert, Incident
from ..services.monitor_state import MonitorState
from .deps import get_state

router = APIRouter(prefix="/api/alerts", tags=["alerts"])
incidents_router = APIRouter(prefix="/api/incidents", tags=["incidents"])


@router.get("", response_model=List[Alert])
async def list_alerts(
    status: Optional[Literal["active", "acknowledged", "resolved"]] = None,
    state: MonitorState = Depends(get_state),
):
    """List alerts, most recent first, optionally filtered by status."""
    return state.get_alerts(status)


@router.post("/{alert_id}/acknowledge", response_model=Alert)
async def acknowledge_alert(alert_id: str, state: MonitorState = Depends(get_state)):
    return state.acknowledge_alert(alert_id)


@router.post("/{alert_id}/resolve", response_model=Alert)
async def resolve_alert(alert_id: str, state: MonitorState = Depends(get_state)):
    return state.resolve_alert(alert_id)


@incidents_router.get("", response_model=List[Incident])
async def list_incidents(
    limit: int = Query(100, ge=1, le=1000),
    state: MonitorState = Depends(get_state),
):
    return state.get_incidents(limit=limit)


@incidents_router.get("/{incident_id}", response_model=Incident)
async def get_incident(incident_id: str, state: MonitorState = Depends(get_state)):
    return state.get_incident(incident_id)


@incidents_router.post("/{incident_id}/resolve", response_model=Incident)
async def resolve_incident(incident_id: str, state: MonitorState = Depends(get_state)):
    """Close an incident by hand."""
    return state.resolve_incident(incident_id)
