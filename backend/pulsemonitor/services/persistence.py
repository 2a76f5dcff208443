"""Snapshot store - loads and saves every entity collection.

Each collection of the snapshot is kept as one JSON row in the
``snapshots`` table. Loading never raises: a missing or unreadable store
yields an empty default snapshot so the service can still start.
"""
import json
import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import PersistenceError
from ..models import SnapshotRecord
from ..schemas.snapshot import Snapshot, COLLECTIONS
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Load/save contract between the monitoring core and storage."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from ..database import async_session
            session_factory = async_session
        self._session_factory = session_factory

    async def load_all(self) -> Snapshot:
        """Load the last saved snapshot, or an empty one on any failure."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(SnapshotRecord))
                rows = {row.key: row.payload for row in result.scalars().all()}
        except SQLAlchemyError as e:
            logger.error(f"Failed to load snapshot, starting from defaults: {e}")
            return Snapshot()

        if not rows:
            logger.info("No saved state found, starting fresh")
            return Snapshot()

        data = {}
        for key in COLLECTIONS:
            if key not in rows:
                continue
            try:
                data[key] = json.loads(rows[key])
            except json.JSONDecodeError as e:
                logger.error(f"Discarding unreadable '{key}' collection: {e}")

        try:
            snapshot = Snapshot.model_validate(data)
        except ValidationError as e:
            logger.error(f"Saved snapshot failed validation, starting from defaults: {e}")
            return Snapshot()

        logger.info(
            f"Loaded state: {len(snapshot.endpoints)} endpoints, "
            f"{len(snapshot.contacts)} contacts, {len(snapshot.incidents)} incidents"
        )
        return snapshot

    async def save_all(self, snapshot: Snapshot) -> None:
        """Persist every collection of the snapshot.

        Raises:
            PersistenceError: If the write fails after retries
        """
        payload = snapshot.trimmed().model_dump(mode="json")

        async def write():
            async with self._session_factory() as session:
                await self._upsert(session, payload)
                await session.commit()

        try:
            await retry_on_lock(write, description="snapshot save")
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to save snapshot: {e}") from e

    async def _upsert(self, session: AsyncSession, payload: dict) -> None:
        result = await session.execute(select(SnapshotRecord))
        existing = {row.key: row for row in result.scalars().all()}
        now = utcnow().replace(tzinfo=None)

        for key in COLLECTIONS:
            document = json.dumps(payload[key])
            record = existing.get(key)
            if record is None:
                session.add(SnapshotRecord(key=key, payload=document, updated_at=now))
            else:
                record.payload = document
                record.updated_at = now
