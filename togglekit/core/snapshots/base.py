"""Snapshot repository contract and shared restore logic.

Backends only persist snapshots; creating, restoring and auditing are the
same for all of them and live here.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from togglekit.core.context import Context, actor_ref
from togglekit.core.feature_store.base import FeatureStore, is_internal
from togglekit.core.snapshots.models import (
    Snapshot,
    SnapshotEntry,
    SnapshotEvent,
    SnapshotEventType,
)
from togglekit.utils.metrics import snapshot_operations_total

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id() -> str:
    return uuid.uuid4().hex


class SnapshotRepository(ABC):
    """Captures and restores a context's feature map through a FeatureStore."""

    driver_name = "abstract"

    def __init__(self, store: FeatureStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    # Persistence primitives

    @abstractmethod
    def _insert(self, snapshot: Snapshot) -> None:
        pass

    @abstractmethod
    def _load(self, snapshot_id: str, context_key: str) -> Optional[Snapshot]:
        pass

    @abstractmethod
    def _load_all(self, context_key: str) -> List[Snapshot]:
        """All snapshots for a context, oldest first."""
        pass

    @abstractmethod
    def _append_event(self, snapshot: Snapshot, event: SnapshotEvent) -> None:
        """Persist a new event along with the snapshot's restore fields."""
        pass

    @abstractmethod
    def _remove(self, snapshot: Snapshot, event: SnapshotEvent) -> None:
        """Record the deletion event, then drop the snapshot."""
        pass

    @abstractmethod
    def _events_for(self, snapshot_id: str) -> List[SnapshotEvent]:
        pass

    def _prune_before(self, cutoff: datetime) -> int:
        return 0

    # Operations

    def create(
        self,
        context: Context,
        features: Mapping[str, Any],
        label: Optional[str] = None,
        created_by: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Store a snapshot of ``features`` for a context and return its id."""
        now = self.clock()
        actor = actor_ref(created_by)
        snapshot = Snapshot(
            id=generate_id(),
            context_key=context.key,
            label=label,
            entries=[SnapshotEntry.of(name, value) for name, value in features.items()],
            metadata=dict(metadata or {}),
            created_by=actor,
            created_at=now,
        )
        snapshot.events.append(
            self._event(
                SnapshotEventType.CREATED, actor, {"feature_count": len(snapshot.entries)}, now
            )
        )
        self._insert(snapshot)
        self._count("create")
        logger.info(
            f"Created snapshot with {len(snapshot.entries)} features for {context.key}",
            extra={"snapshot_id": snapshot.id, "context_key": context.key},
        )
        return snapshot.id

    def capture(
        self,
        context: Context,
        label: Optional[str] = None,
        created_by: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Snapshot whatever the store currently holds for a context."""
        features = {
            name: value
            for name, value in self.store.values_for(context).items()
            if not is_internal(name)
        }
        return self.create(context, features, label=label, created_by=created_by, metadata=metadata)

    def restore(self, snapshot_id: str, context: Context, restored_by: Any = None) -> bool:
        """Replace the context's stored features with the snapshot's.

        Internal (``__``-prefixed) features are left untouched. Returns False
        when the snapshot does not exist for this context.
        """
        snapshot = self.get(snapshot_id, context)
        if snapshot is None:
            return False

        for name in self.store.list_stored():
            if not is_internal(name):
                self.store.delete(name, context)

        restored = []
        for entry in snapshot.entries:
            self.store.set(entry.name, context, entry.value)
            restored.append(entry.name)

        now = self.clock()
        actor = actor_ref(restored_by)
        snapshot.restored_at = now
        snapshot.restored_by = actor
        event = self._event(SnapshotEventType.RESTORED, actor, {"features_restored": restored}, now)
        snapshot.events.append(event)
        self._append_event(snapshot, event)

        self._count("restore")
        logger.info(
            f"Restored {len(restored)} features for {context.key}",
            extra={"snapshot_id": snapshot_id, "context_key": context.key},
        )
        return True

    def restore_partial(
        self,
        snapshot_id: str,
        context: Context,
        names: Iterable[str],
        restored_by: Any = None,
    ) -> bool:
        """Restore only the named features that the snapshot contains."""
        snapshot = self.get(snapshot_id, context)
        if snapshot is None:
            return False

        wanted = set(names)
        restored = []
        for entry in snapshot.entries:
            if entry.name in wanted:
                self.store.set(entry.name, context, entry.value)
                restored.append(entry.name)

        event = self._event(
            SnapshotEventType.PARTIAL_RESTORE,
            actor_ref(restored_by),
            {"features_restored": restored, "total_features": len(restored)},
            self.clock(),
        )
        snapshot.events.append(event)
        self._append_event(snapshot, event)

        self._count("restore_partial")
        logger.info(
            f"Partially restored {len(restored)} features for {context.key}",
            extra={"snapshot_id": snapshot_id, "context_key": context.key},
        )
        return True

    def get(self, snapshot_id: str, context: Context) -> Optional[Snapshot]:
        snapshot = self._load(snapshot_id, context.key)
        if snapshot is None or snapshot.context_key != context.key:
            return None
        return snapshot

    def list(self, context: Context) -> List[Snapshot]:
        """Snapshots for a context, newest first."""
        snapshots = sorted(self._load_all(context.key), key=lambda s: s.created_at)
        snapshots.reverse()
        return snapshots

    def delete(self, snapshot_id: str, context: Context, deleted_by: Any = None) -> bool:
        snapshot = self.get(snapshot_id, context)
        if snapshot is None:
            return False

        event = self._event(
            SnapshotEventType.DELETED, actor_ref(deleted_by), {"label": snapshot.label}, self.clock()
        )
        snapshot.events.append(event)
        self._remove(snapshot, event)
        self._count("delete")
        logger.info(
            f"Deleted snapshot for {context.key}",
            extra={"snapshot_id": snapshot_id, "context_key": context.key},
        )
        return True

    def clear_all(self, context: Context, deleted_by: Any = None) -> int:
        """Delete every snapshot of a context; returns how many were removed."""
        removed = 0
        for snapshot in self._load_all(context.key):
            if self.delete(snapshot.id, context, deleted_by=deleted_by):
                removed += 1
        return removed

    def get_event_history(self, snapshot_id: str) -> List[SnapshotEvent]:
        """Events of a snapshot in the order they happened."""
        return sorted(self._events_for(snapshot_id), key=lambda e: e.timestamp)

    def prune(self, older_than_days: int) -> int:
        """Remove snapshots created more than ``older_than_days`` days ago."""
        cutoff = self.clock() - timedelta(days=older_than_days)
        removed = self._prune_before(cutoff)
        self._count("prune")
        if removed:
            logger.info(f"Pruned {removed} snapshots older than {older_than_days} days")
        return removed

    def _event(
        self,
        event_type: SnapshotEventType,
        actor: Any,
        metadata: Dict[str, Any],
        timestamp: datetime,
    ) -> SnapshotEvent:
        return SnapshotEvent(
            id=generate_id(),
            type=event_type,
            performed_by=actor,
            metadata=metadata,
            timestamp=timestamp,
        )

    def _count(self, operation: str) -> None:
        snapshot_operations_total.labels(driver=self.driver_name, operation=operation).inc()
