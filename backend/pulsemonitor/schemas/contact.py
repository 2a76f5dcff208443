"""Contact and contact group schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..utils.clock import new_id, utcnow


class Contact(BaseModel):
    """A person who can receive notifications."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    role: str = ""
    notify_email: bool = True  # Deliver by email
    notify_sms: bool = False  # Deliver by SMS
    notify_on_down: bool = True
    notify_on_up: bool = True
    notify_on_incident: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def wants_notifications(self) -> bool:
        return self.notify_on_down or self.notify_on_up or self.notify_on_incident


class ContactUpdate(BaseModel):
    """Partial update for a contact."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    notify_email: Optional[bool] = None
    notify_sms: Optional[bool] = None
    notify_on_down: Optional[bool] = None
    notify_on_up: Optional[bool] = None
    notify_on_incident: Optional[bool] = None


class ContactGroup(BaseModel):
    """Flat membership list of contacts (no nesting)."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    contact_ids: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("contact_ids")
    @classmethod
    def _dedupe_members(cls, value: List[str]) -> List[str]:
        # Preserve first-seen order
        return list(dict.fromkeys(value))


class ContactGroupUpdate(BaseModel):
    """Partial update for a contact group."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    contact_ids: Optional[List[str]] = None
