"""Database models."""
from .snapshot import SnapshotRecord

__all__ = ["SnapshotRecord"]
