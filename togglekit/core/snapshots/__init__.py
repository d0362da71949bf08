"""Feature snapshots with an append-only audit trail."""

from togglekit.core.snapshots.models import (
    SnapshotEventType,
    SnapshotEntry,
    SnapshotEvent,
    Snapshot,
)
from togglekit.core.snapshots.base import SnapshotRepository
from togglekit.core.snapshots.memory import InMemorySnapshotRepository
from togglekit.core.snapshots.cache import CacheSnapshotRepository
from togglekit.core.snapshots.database import DatabaseSnapshotRepository

__all__ = [
    "SnapshotEventType",
    "SnapshotEntry",
    "SnapshotEvent",
    "Snapshot",
    "SnapshotRepository",
    "InMemorySnapshotRepository",
    "CacheSnapshotRepository",
    "DatabaseSnapshotRepository",
]
