"""Contact and contact group API endpoints."""
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends

from ..schemas.contact import Contact, ContactGroup, ContactGroupUpdate, ContactUpdate
from ..services.monitor_state import MonitorState
from .deps import get_state

router = APIRouter(prefix="/api/contacts", tags=["contacts"])
groups_router = APIRouter(prefix="/api/contact-groups", tags=["contacts"])


@router.get("", response_model=List[Contact])
async def list_contacts(state: MonitorState = Depends(get_state)):
    return state.get_contacts()


@router.post("", response_model=Contact, status_code=201)
async def create_contact(payload: Dict[str, Any] = Body(...), state: MonitorState = Depends(get_state)):
    return state.create_contact(payload)


@router.get("/recipients")
async def preview_recipients(state: MonitorState = Depends(get_state)):
    """Who would be notified right now, per channel."""
    recipients = state.resolve_recipients()
    return {
        "email": recipients.email_addresses,
        "sms": recipients.phone_numbers,
        "total": len(recipients.all),
    }


@router.get("/{contact_id}", response_model=Contact)
async def get_contact(contact_id: str, state: MonitorState = Depends(get_state)):
    return state.get_contact(contact_id)


@router.put("/{contact_id}", response_model=Contact)
async def update_contact(contact_id: str, changes: ContactUpdate, state: MonitorState = Depends(get_state)):
    return state.update_contact(contact_id, changes.model_dump(exclude_unset=True))


@router.delete("/{contact_id}", status_code=204)
async def delete_contact(contact_id: str, state: MonitorState = Depends(get_state)):
    """Delete a contact and remove it from every group."""
    state.delete_contact(contact_id)


@groups_router.get("", response_model=List[ContactGroup])
async def list_contact_groups(state: MonitorState = Depends(get_state)):
    return state.get_contact_groups()


@groups_router.post("", response_model=ContactGroup, status_code=201)
async def create_contact_group(payload: Dict[str, Any] = Body(...), state: MonitorState = Depends(get_state)):
    return state.create_contact_group(payload)


@groups_router.get("/{group_id}", response_model=ContactGroup)
async def get_contact_group(group_id: str, state: MonitorState = Depends(get_state)):
    return state.get_contact_group(group_id)


@groups_router.put("/{group_id}", response_model=ContactGroup)
async def update_contact_group(
    group_id: str,
    changes: ContactGroupUpdate,
    state: MonitorState = Depends(get_state),
):
    return state.update_contact_group(group_id, changes.model_dump(exclude_unset=True))


@groups_router.delete("/{group_id}", status_code=204)
async def delete_contact_group(group_id: str, state: MonitorState = Depends(get_state)):
    state.delete_contact_group(group_id)


@groups_router.get("/{group_id}/members")
async def list_contact_group_members(group_id: str, state: MonitorState = Depends(get_state)):
    return {
        "group": state.get_contact_group(group_id),
        "members": state.get_contact_group_members(group_id),
    }


@groups_router.post("/{group_id}/members/{contact_id}", response_model=ContactGroup, status_code=201)
async def add_contact_group_member(group_id: str, contact_id: str, state: MonitorState = Depends(get_state)):
    """Add a contact to a group; 409 if it is already a member."""
    return state.add_contact_group_member(group_id, contact_id)


@groups_router.delete("/{group_id}/members/{contact_id}", response_model=ContactGroup)
async def remove_contact_group_member(group_id: str, contact_id: str, state: MonitorState = Depends(get_state)):
    return state.remove_contact_group_member(group_id, contact_id)
