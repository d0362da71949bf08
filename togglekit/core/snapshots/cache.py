"""Cache-backed snapshot repository.

All snapshots of one context live in a single document at
``{prefix}:{context_key}``. Documents expire after the retention period, so
explicit pruning is unnecessary and ``prune`` returns 0.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from togglekit.core.errors import ConfigurationError
from togglekit.core.feature_store.cache import CacheBackend
from togglekit.core.snapshots.base import SnapshotRepository
from togglekit.core.snapshots.models import Snapshot, SnapshotEvent

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class CacheSnapshotRepository(SnapshotRepository):
    driver_name = "cache"

    def __init__(
        self,
        store: Any,
        cache: CacheBackend,
        prefix: str = "togglekit:snapshots",
        retention_days: int = 365,
        **kwargs: Any,
    ):
        super().__init__(store, **kwargs)
        self.cache = cache
        self.prefix = prefix
        self.retention_days = retention_days
        if self.ttl <= 0:
            raise ConfigurationError(
                f"Snapshot retention must be positive, got {retention_days!r} days"
            )

    @property
    def ttl(self) -> int:
        return int(self.retention_days * SECONDS_PER_DAY)

    def _document_key(self, context_key: str) -> str:
        return f"{self.prefix}:{context_key}"

    def _read(self, context_key: str) -> Dict[str, Dict[str, Any]]:
        document = self.cache.get(self._document_key(context_key))
        return document if isinstance(document, dict) else {}

    def _write(self, context_key: str, document: Dict[str, Dict[str, Any]]) -> None:
        key = self._document_key(context_key)
        if document:
            self.cache.put(key, document, self.ttl)
        else:
            self.cache.forget(key)

    def _insert(self, snapshot: Snapshot) -> None:
        document = self._read(snapshot.context_key)
        document[snapshot.id] = snapshot.to_dict()
        self._write(snapshot.context_key, document)

    def _load(self, snapshot_id: str, context_key: str) -> Optional[Snapshot]:
        data = self._read(context_key).get(snapshot_id)
        return Snapshot.from_dict(data) if data else None

    def _load_all(self, context_key: str) -> List[Snapshot]:
        return [Snapshot.from_dict(d) for d in self._read(context_key).values()]

    def _append_event(self, snapshot: Snapshot, event: SnapshotEvent) -> None:
        self._insert(snapshot)

    def _remove(self, snapshot: Snapshot, event: SnapshotEvent) -> None:
        document = self._read(snapshot.context_key)
        document.pop(snapshot.id, None)
        self._write(snapshot.context_key, document)

    def _events_for(self, snapshot_id: str) -> List[SnapshotEvent]:
        # No context given: scan every document under the prefix
        for key in self.cache.keys(f"{self.prefix}:*"):
            document = self.cache.get(key)
            if isinstance(document, dict) and snapshot_id in document:
                return Snapshot.from_dict(document[snapshot_id]).events
        return []
