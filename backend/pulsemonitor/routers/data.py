"""Configuration export and import."""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from ..services.monitor_state import MonitorState
from ..services.scheduler import SchedulerService
from .deps import get_scheduler, get_state

router = APIRouter(prefix="/api", tags=["data"])


@router.get("/export")
async def export_data(state: MonitorState = Depends(get_state)):
    """Applications, groups, monitors, contacts and settings, without credentials."""
    return state.export_data()


@router.post("/import")
async def import_data(
    bundle: Dict[str, Any] = Body(...),
    state: MonitorState = Depends(get_state),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Merge an exported bundle. Invalid entries are skipped and listed."""
    result = state.import_data(bundle)
    if scheduler.running:
        for endpoint_id in result["endpoint_ids"]:
            scheduler.schedule(state.get_endpoint(endpoint_id))
    return result
