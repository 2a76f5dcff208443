"""Recipient resolution - expands contacts and groups into channel lists."""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from ..schemas.contact import Contact, ContactGroup


@dataclass
class Recipients:
    """Deduplicated notification targets, split by channel."""
    email: List[Contact] = field(default_factory=list)
    sms: List[Contact] = field(default_factory=list)
    all: List[Contact] = field(default_factory=list)

    @property
    def email_addresses(self) -> List[str]:
        return [contact.email for contact in self.email]

    @property
    def phone_numbers(self) -> List[str]:
        return [contact.phone for contact in self.sms]


def resolve_recipients(
    contacts: Mapping[str, Contact],
    contact_groups: Iterable[ContactGroup],
) -> Recipients:
    """Union direct contacts with group members, keyed by contact id.

    A contact reachable through several paths appears once. Contacts with no
    notify-on flag set are dropped. Group members that no longer exist are
    ignored. No side effects.
    """
    selected: Dict[str, Contact] = {}

    for contact in contacts.values():
        if contact.wants_notifications:
            selected[contact.id] = contact

    for group in contact_groups:
        for contact_id in group.contact_ids:
            contact = contacts.get(contact_id)
            if contact is not None and contact.wants_notifications:
                selected[contact.id] = contact

    everyone = list(selected.values())
    return Recipients(
        email=[c for c in everyone if c.email and c.notify_email],
        sms=[c for c in everyone if c.phone and c.notify_sms],
        all=everyone,
    )
