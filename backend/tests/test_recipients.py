"""Tests for recipient resolution."""
from pulsemonitor.schemas.contact import Contact, ContactGroup
from pulsemonitor.services.recipients import resolve_recipients


def _contacts(*contacts):
    return {contact.id: contact for contact in contacts}


class TestResolveRecipients:
    def setup_method(self):
        self.alice = Contact(name="Alice", email="alice@example.com", phone="+1555000001", notify_sms=True)
        self.bob = Contact(name="Bob", email="bob@example.com")
        self.carol = Contact(name="Carol", phone="+1555000003", notify_email=False, notify_sms=True)
        self.muted = Contact(
            name="Muted", email="muted@example.com",
            notify_on_down=False, notify_on_up=False, notify_on_incident=False,
        )
        self.contacts = _contacts(self.alice, self.bob, self.carol, self.muted)

    def test_channel_lists(self):
        recipients = resolve_recipients(self.contacts, [])
        assert set(recipients.email_addresses) == {"alice@example.com", "bob@example.com"}
        assert set(recipients.phone_numbers) == {"+1555000001", "+1555000003"}

    def test_contact_without_notify_flags_is_dropped(self):
        recipients = resolve_recipients(self.contacts, [])
        assert self.muted.id not in {c.id for c in recipients.all}

    def test_overlapping_groups_yield_each_contact_once(self):
        groups = [
            ContactGroup(name="Ops", contact_ids=[self.alice.id, self.bob.id]),
            ContactGroup(name="On call", contact_ids=[self.alice.id, self.carol.id]),
        ]
        recipients = resolve_recipients(self.contacts, groups)
        ids = [c.id for c in recipients.all]
        assert len(ids) == len(set(ids))
        assert recipients.email_addresses.count("alice@example.com") == 1
        assert recipients.phone_numbers.count("+1555000001") == 1

    def test_idempotent_and_order_independent(self):
        groups = [ContactGroup(name="Ops", contact_ids=[self.carol.id, self.alice.id])]
        first = resolve_recipients(self.contacts, groups)
        second = resolve_recipients(self.contacts, groups)
        reordered = resolve_recipients(_contacts(*reversed(list(self.contacts.values()))), list(reversed(groups)))

        def as_sets(r):
            return set(r.email_addresses), set(r.phone_numbers), {c.id for c in r.all}

        assert as_sets(first) == as_sets(second) == as_sets(reordered)

    def test_missing_group_members_are_ignored(self):
        groups = [ContactGroup(name="Stale", contact_ids=["deleted-contact"])]
        recipients = resolve_recipients(self.contacts, groups)
        assert len(recipients.all) == 3

    def test_no_side_effects(self):
        groups = [ContactGroup(name="Ops", contact_ids=[self.alice.id])]
        before = {cid: c.model_dump() for cid, c in self.contacts.items()}
        resolve_recipients(self.contacts, groups)
        assert {cid: c.model_dump() for cid, c in self.contacts.items()} == before
        assert groups[0].contact_ids == [self.alice.id]
