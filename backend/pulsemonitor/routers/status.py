"""Status overview, activity and live-update API for the dashboard."""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket
from starlette.websockets import WebSocketDisconnect

from ..schemas.activity import ActivityEntry
from ..schemas.status import NetworkSelfStatus, StatsOverview, Status
from ..services.monitor_state import MonitorState
from .deps import get_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/status", tags=["status"])
ws_router = APIRouter(tags=["live"])


@router.get("/overview", response_model=StatsOverview)
async def get_status_overview(state: MonitorState = Depends(get_state)):
    """Get dashboard overview data."""
    return state.get_stats()


@router.get("/statuses", response_model=Dict[str, Status])
async def get_statuses(state: MonitorState = Depends(get_state)):
    """Current status of every monitor, keyed by monitor id."""
    return state.get_statuses()


@router.get("/network", response_model=NetworkSelfStatus)
async def get_network_status(state: MonitorState = Depends(get_state)):
    return state.get_network_status()


@router.get("/activity", response_model=List[ActivityEntry])
async def get_activity(
    limit: int = Query(100, ge=1, le=5000),
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
    state: MonitorState = Depends(get_state),
):
    """Activity log, most recent first."""
    return state.get_activity(limit=limit, entity_type=entity_type, entity_id=entity_id, action=action)


@ws_router.websocket("/ws")
async def live_updates(websocket: WebSocket):
    """Push every change event to the client as JSON {type, data, timestamp}."""
    manager = websocket.app.state.websocket_manager
    await manager.connect(websocket)
    try:
        while True:
            # Client messages are only keep-alives
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(websocket)
