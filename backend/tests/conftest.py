import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pulsemonitor.database import Base
from pulsemonitor.services.alerter import NotificationCooldown, NotificationDispatcher
from pulsemonitor.services.checker import CheckerService
from pulsemonitor.services.monitor_state import MonitorState
from pulsemonitor.services.persistence import SnapshotStore
from pulsemonitor.services.scheduler import SchedulerService

from fakes import RecordingEmailSender, RecordingSmsSender, RecordingSpeech, ScriptedProbe


@pytest.fixture
def state():
    """In-memory state without persistence."""
    return MonitorState()


@pytest.fixture
def http_endpoint(state):
    return state.create_endpoint({"name": "API", "type": "http", "url": "http://api.internal/health"})


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def sms_sender():
    return RecordingSmsSender()


@pytest.fixture
def speech():
    return RecordingSpeech()


@pytest.fixture
def dispatcher(state, email_sender, sms_sender, speech):
    return NotificationDispatcher(
        state,
        email_sender=email_sender,
        sms_sender=sms_sender,
        speech=speech,
        cooldown=NotificationCooldown(60),
    )


@pytest.fixture
def probe():
    return ScriptedProbe()


@pytest.fixture
def scheduler(state, probe, dispatcher):
    checker = CheckerService(probes={"http": probe, "https": probe})
    return SchedulerService(state, checker=checker, dispatcher=dispatcher)


@pytest_asyncio.fixture
async def session_factory():
    """Session factory over an in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return SnapshotStore(session_factory)
