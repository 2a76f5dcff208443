"""Snapshot model - one JSON document per entity collection."""
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime

from ..database import Base


class SnapshotRecord(Base):
    """Serialized entity collection keyed by collection name."""

    __tablename__ = "snapshots"

    key = Column(String, primary_key=True)  # endpoints, statuses, contacts, ...
    payload = Column(Text, nullable=False)  # JSON document
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
