"""Engine and session factory behind the snapshot store.

SQLite is the default; PostgreSQL is used when DATABASE_URL points at it.
"""
import logging
import os

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import settings, get_database_url

logger = logging.getLogger(__name__)

Base = declarative_base()

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=30000",
    "PRAGMA synchronous=NORMAL",
)


def build_engine(url: str) -> AsyncEngine:
    """Create an engine tuned for the backend behind ``url``."""
    if url.startswith("postgresql"):
        logger.info("Snapshot store backend: PostgreSQL")
        return create_async_engine(url, pool_size=5, max_overflow=10, pool_pre_ping=True, pool_recycle=3600)

    logger.info("Snapshot store backend: SQLite")
    sqlite_engine = create_async_engine(url, pool_pre_ping=True, connect_args={"timeout": 30})

    @event.listens_for(sqlite_engine.sync_engine, "connect")
    def apply_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    return sqlite_engine


engine = build_engine(get_database_url())
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    """Create the snapshot table, and the data directory for SQLite."""
    if engine.url.get_backend_name() == "sqlite":
        os.makedirs(settings.data_path, exist_ok=True)

    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    await engine.dispose()
