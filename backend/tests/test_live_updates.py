"""Tests for configuration helpers and the live-update fan-out."""
from pulsemonitor.config import Settings, get_database_url, normalize_database_url
from pulsemonitor.services.events import ChangeEvent
from pulsemonitor.services.websocket_manager import ConnectionManager


class TestDatabaseUrl:
    def test_plain_postgres_urls_get_async_driver(self):
        assert normalize_database_url("postgres://u:p@db/pm") == "postgresql+asyncpg://u:p@db/pm"
        assert normalize_database_url("postgresql://u:p@db/pm") == "postgresql+asyncpg://u:p@db/pm"
        assert normalize_database_url("postgresql+asyncpg://u:p@db/pm") == "postgresql+asyncpg://u:p@db/pm"

    def test_sqlite_default_under_data_path(self):
        assert get_database_url(Settings(data_path="/srv/pm", database_url=None)) == \
            "sqlite+aiosqlite:////srv/pm/pulsemonitor.db"


class FakeSocket:
    def __init__(self, broken=False):
        self.broken = broken
        self.accepted = False
        self.frames = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        if self.broken:
            raise RuntimeError("socket closed")
        self.frames.append(text)


class TestConnectionManager:
    async def test_event_reaches_every_client(self):
        manager = ConnectionManager()
        first, second = FakeSocket(), FakeSocket()
        await manager.connect(first)
        await manager.connect(second)

        await manager.handle_event(ChangeEvent(type="status_change", data={"endpoint_id": "e1"}))

        assert first.accepted
        assert len(first.frames) == len(second.frames) == 1
        assert '"type": "status_change"' in first.frames[0]

    async def test_failed_client_is_dropped(self):
        manager = ConnectionManager()
        healthy, broken = FakeSocket(), FakeSocket(broken=True)
        await manager.connect(healthy)
        await manager.connect(broken)

        await manager.handle_event(ChangeEvent(type="alert_created", data={}))

        assert manager.connection_count == 1
        assert len(healthy.frames) == 1
