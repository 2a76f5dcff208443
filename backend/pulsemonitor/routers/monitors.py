"""Monitor (endpoint) CRUD and check API endpoints."""
import dataclasses
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Query

from ..errors import NotFoundError
from ..schemas.endpoint import EndpointUpdate, masked
from ..schemas.incident import Incident
from ..schemas.status import CheckResultResponse, HistoryEntry
from ..services.checker import checker_service
from ..services.monitor_state import MonitorState
from ..services.scheduler import SchedulerService
from ..services.validation import validate_endpoint
from .deps import get_scheduler, get_state

router = APIRouter(prefix="/api/monitors", tags=["monitors"])


def _with_status(state: MonitorState, endpoint) -> Dict[str, Any]:
    data = masked(endpoint)
    status = state.get_statuses().get(endpoint.id)
    data["status"] = status.model_dump(mode="json", exclude={"history"}) if status else None
    return data


@router.get("")
async def list_monitors(state: MonitorState = Depends(get_state)):
    """List all monitors with their current status."""
    return [_with_status(state, endpoint) for endpoint in state.get_endpoints()]


@router.post("", status_code=201)
async def create_monitor(
    payload: Dict[str, Any] = Body(...),
    state: MonitorState = Depends(get_state),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Create a monitor and start checking it."""
    endpoint = state.create_endpoint(payload)
    if scheduler.running:
        scheduler.schedule(endpoint)
    return _with_status(state, endpoint)


@router.post("/test", response_model=CheckResultResponse)
async def test_monitor(payload: Dict[str, Any] = Body(...)):
    """Run a one-off check of an unsaved monitor definition."""
    endpoint = validate_endpoint({**payload, "name": payload.get("name") or "Test"})
    result = await checker_service.check(endpoint)
    return CheckResultResponse(**dataclasses.asdict(result))


@router.get("/{monitor_id}")
async def get_monitor(monitor_id: str, state: MonitorState = Depends(get_state)):
    """Get a monitor with its current status."""
    return _with_status(state, state.get_endpoint(monitor_id))


@router.put("/{monitor_id}")
async def update_monitor(
    monitor_id: str,
    changes: EndpointUpdate,
    state: MonitorState = Depends(get_state),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Update a monitor; its schedule is rebuilt from the new definition."""
    endpoint = state.update_endpoint(monitor_id, changes.model_dump(exclude_unset=True))
    if scheduler.running:
        scheduler.schedule(endpoint)
    return _with_status(state, endpoint)


@router.delete("/{monitor_id}", status_code=204)
async def delete_monitor(
    monitor_id: str,
    state: MonitorState = Depends(get_state),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Delete a monitor. In-flight checks are discarded."""
    state.delete_endpoint(monitor_id)
    scheduler.forget(monitor_id)


@router.post("/{monitor_id}/check", response_model=CheckResultResponse)
async def check_monitor_now(
    monitor_id: str,
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Check a monitor immediately and record the result."""
    outcome = await scheduler.run_check_now(monitor_id)
    if outcome is None:
        # Deleted while the check was running
        raise NotFoundError("endpoint", monitor_id)
    status = outcome.transition.status
    return CheckResultResponse(
        status=status.status,
        response_time_ms=status.response_time_ms,
        message=status.message,
        ssl_info=status.ssl_info,
    )


@router.get("/{monitor_id}/history", response_model=List[HistoryEntry])
async def get_monitor_history(
    monitor_id: str,
    limit: int = Query(100, ge=1, le=100),
    state: MonitorState = Depends(get_state),
):
    """Recent check samples, most recent first."""
    return state.get_status(monitor_id).history[:limit]


@router.get("/{monitor_id}/incidents", response_model=List[Incident])
async def get_monitor_incidents(
    monitor_id: str,
    limit: int = Query(50, ge=1, le=1000),
    state: MonitorState = Depends(get_state),
):
    """Incidents recorded for a monitor, most recent first."""
    state.get_endpoint(monitor_id)
    return state.get_incidents(limit=limit, endpoint_id=monitor_id)
