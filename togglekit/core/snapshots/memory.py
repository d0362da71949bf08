"""Process-local snapshot repository."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from togglekit.core.snapshots.base import SnapshotRepository
from togglekit.core.snapshots.models import Snapshot, SnapshotEvent

logger = logging.getLogger(__name__)


class InMemorySnapshotRepository(SnapshotRepository):
    """Keeps serialized snapshots per context for the life of the process.

    Nothing outlives the process, so ``prune`` always returns 0.
    """

    driver_name = "memory"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        # context_key -> snapshot_id -> serialized snapshot
        self._documents: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _insert(self, snapshot: Snapshot) -> None:
        self._documents.setdefault(snapshot.context_key, {})[snapshot.id] = snapshot.to_dict()

    def _load(self, snapshot_id: str, context_key: str) -> Optional[Snapshot]:
        data = self._documents.get(context_key, {}).get(snapshot_id)
        return Snapshot.from_dict(data) if data else None

    def _load_all(self, context_key: str) -> List[Snapshot]:
        return [Snapshot.from_dict(d) for d in self._documents.get(context_key, {}).values()]

    def _append_event(self, snapshot: Snapshot, event: SnapshotEvent) -> None:
        self._documents[snapshot.context_key][snapshot.id] = snapshot.to_dict()

    def _remove(self, snapshot: Snapshot, event: SnapshotEvent) -> None:
        snapshots = self._documents.get(snapshot.context_key, {})
        snapshots.pop(snapshot.id, None)
        if not snapshots:
            self._documents.pop(snapshot.context_key, None)

    def _events_for(self, snapshot_id: str) -> List[SnapshotEvent]:
        for snapshots in self._documents.values():
            if snapshot_id in snapshots:
                return Snapshot.from_dict(snapshots[snapshot_id]).events
        return []
