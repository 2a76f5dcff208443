"""Application and monitor group API endpoints."""
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends

from ..schemas.application import (
    Application,
    ApplicationHealth,
    ApplicationUpdate,
    MonitorGroup,
    MonitorGroupUpdate,
)
from ..schemas.endpoint import masked
from ..services.monitor_state import MonitorState
from .deps import get_state

router = APIRouter(prefix="/api/applications", tags=["applications"])
groups_router = APIRouter(prefix="/api/groups", tags=["groups"])


@router.get("", response_model=List[Application])
async def list_applications(state: MonitorState = Depends(get_state)):
    return state.get_applications()


@router.post("", response_model=Application, status_code=201)
async def create_application(payload: Dict[str, Any] = Body(...), state: MonitorState = Depends(get_state)):
    return state.create_application(payload)


@router.get("/{application_id}")
async def get_application(application_id: str, state: MonitorState = Depends(get_state)):
    """Application with its member monitors."""
    application = state.get_application(application_id)
    return {
        **application.model_dump(mode="json"),
        "monitors": [masked(e) for e in state.get_application_endpoints(application_id)],
    }


@router.get("/{application_id}/health", response_model=ApplicationHealth)
async def get_application_health(application_id: str, state: MonitorState = Depends(get_state)):
    """Rollup of member statuses: healthy, warning or critical."""
    return state.get_application_health(application_id)


@router.put("/{application_id}", response_model=Application)
async def update_application(
    application_id: str,
    changes: ApplicationUpdate,
    state: MonitorState = Depends(get_state),
):
    return state.update_application(application_id, changes.model_dump(exclude_unset=True))


@router.delete("/{application_id}", status_code=204)
async def delete_application(application_id: str, state: MonitorState = Depends(get_state)):
    """Delete an application. Its monitors are kept."""
    state.delete_application(application_id)


@router.post("/{application_id}/monitors/{monitor_id}")
async def add_monitor(application_id: str, monitor_id: str, state: MonitorState = Depends(get_state)):
    return masked(state.add_endpoint_to_application(application_id, monitor_id))


@router.delete("/{application_id}/monitors/{monitor_id}")
async def remove_monitor(application_id: str, monitor_id: str, state: MonitorState = Depends(get_state)):
    return masked(state.remove_endpoint_from_application(application_id, monitor_id))


@groups_router.get("", response_model=List[MonitorGroup])
async def list_groups(state: MonitorState = Depends(get_state)):
    return state.get_groups()


@groups_router.post("", response_model=MonitorGroup, status_code=201)
async def create_group(payload: Dict[str, Any] = Body(...), state: MonitorState = Depends(get_state)):
    return state.create_group(payload)


@groups_router.get("/{group_id}")
async def get_group(group_id: str, state: MonitorState = Depends(get_state)):
    """Group with its monitors and their current status."""
    group = state.get_group(group_id)
    statuses = state.get_statuses()
    monitors = []
    for endpoint in state.get_group_endpoints(group_id):
        status = statuses.get(endpoint.id)
        monitors.append({
            **masked(endpoint),
            "status": status.model_dump(mode="json", exclude={"history"}) if status else None,
        })
    return {**group.model_dump(mode="json"), "monitors": monitors}


@groups_router.put("/{group_id}", response_model=MonitorGroup)
async def update_group(group_id: str, changes: MonitorGroupUpdate, state: MonitorState = Depends(get_state)):
    return state.update_group(group_id, changes.model_dump(exclude_unset=True))


@groups_router.delete("/{group_id}", status_code=204)
async def delete_group(group_id: str, state: MonitorState = Depends(get_state)):
    state.delete_group(group_id)
