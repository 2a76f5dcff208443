"""Tests for the snapshot store."""
import pytest
from sqlalchemy import delete
from sqlalchemy.exc import OperationalError

from pulsemonitor.errors import PersistenceError
from pulsemonitor.models import SnapshotRecord
from pulsemonitor.schemas.application import Application
from pulsemonitor.schemas.contact import Contact
from pulsemonitor.schemas.incident import Incident
from pulsemonitor.schemas.settings import MonitoringSettings
from pulsemonitor.schemas.snapshot import INCIDENT_RETENTION, Snapshot
from pulsemonitor.schemas.status import Status
from pulsemonitor.services.persistence import SnapshotStore
from pulsemonitor.services.validation import validate_endpoint


class TestSnapshotStore:
    async def test_empty_store_loads_defaults(self, store):
        snapshot = await store.load_all()
        assert snapshot == Snapshot()

    async def test_save_then_load(self, store):
        endpoint = validate_endpoint({
            "name": "Bastion", "type": "ssh", "host": "bastion", "username": "ops", "password": "s3cret",
        })
        snapshot = Snapshot(
            endpoints=[endpoint],
            statuses={endpoint.id: Status(status="UP", total_checks=4, successful_checks=4)},
            contacts=[Contact(name="Alice", email="alice@example.com")],
            settings=MonitoringSettings(consecutive_failures_threshold=5),
        )
        await store.save_all(snapshot)
        await store.save_all(snapshot)

        loaded = await store.load_all()
        assert loaded.endpoints[0].password == "s3cret"
        assert loaded.statuses[endpoint.id].total_checks == 4
        assert loaded.contacts[0].name == "Alice"
        assert loaded.settings.consecutive_failures_threshold == 5

    async def test_incident_retention(self, store):
        incidents = [Incident(endpoint_id="e1", status="resolved") for _ in range(INCIDENT_RETENTION + 10)]
        await store.save_all(Snapshot(incidents=incidents))
        loaded = await store.load_all()
        assert len(loaded.incidents) == INCIDENT_RETENTION
        assert loaded.incidents[0].id == incidents[0].id

    async def test_retention_keeps_old_ongoing_incident(self, store):
        ongoing = Incident(endpoint_id="slow-burn")
        incidents = [Incident(endpoint_id="e1", status="resolved") for _ in range(INCIDENT_RETENTION)] + [ongoing]
        await store.save_all(Snapshot(incidents=incidents))
        loaded = await store.load_all()
        assert len(loaded.incidents) == INCIDENT_RETENTION + 1
        assert loaded.incidents[-1].id == ongoing.id

    async def test_collections_missing_from_older_saves_default_empty(self, store, session_factory):
        await store.save_all(Snapshot(applications=[Application(name="Shop")]))
        async with session_factory() as session:
            await session.execute(delete(SnapshotRecord).where(SnapshotRecord.key == "groups"))
            await session.commit()

        loaded = await store.load_all()
        assert loaded.applications[0].name == "Shop"
        assert loaded.groups == []

    async def test_load_failure_returns_defaults(self):
        def broken_factory():
            raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        snapshot = await SnapshotStore(broken_factory).load_all()
        assert snapshot == Snapshot()

    async def test_save_failure_raises_persistence_error(self):
        def broken_factory():
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))

        with pytest.raises(PersistenceError):
            await SnapshotStore(broken_factory).save_all(Snapshot())
