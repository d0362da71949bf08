"""In-memory feature store.

Values live in a process-local dict for the lifetime of the store. There is
no locking: concurrent mutation from several threads needs an external lock,
otherwise the last write wins.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from togglekit.core.context import Context
from togglekit.core.feature_store.base import FeatureRecord, FeatureStore, StaticResolver

logger = logging.getLogger(__name__)


class InMemoryFeatureStore(FeatureStore):
    """Dict-backed store: ``{feature: {context_key: value}}``."""

    driver_name = "memory"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._records: Dict[str, Dict[str, Any]] = {}

    def resolve(self, name: str, context: Context) -> Any:
        contexts = self._records.get(name)
        if contexts is not None and context.key in contexts:
            self._record_hit()
            return contexts[context.key]

        if not self.is_defined(name):
            return self._unknown(name, context)

        value = self._evaluate(name, context)
        self.set(name, context, value)
        return value

    def retrieve(self, name: str, context: Context) -> Optional[FeatureRecord]:
        contexts = self._records.get(name)
        if contexts is None or context.key not in contexts:
            return None
        return FeatureRecord(name=name, context_key=context.key, value=contexts[context.key])

    def set(self, name: str, context: Context, value: Any) -> None:
        self._records.setdefault(name, {})[context.key] = value

    def set_for_all_contexts(self, name: str, value: Any) -> None:
        self._records.pop(name, None)
        self._resolvers[name] = StaticResolver(value)

    def delete(self, name: str, context: Context) -> None:
        contexts = self._records.get(name)
        if contexts is None:
            return
        contexts.pop(context.key, None)
        if not contexts:
            del self._records[name]

    def purge(self, names: Optional[Iterable[str]] = None) -> None:
        names = self._normalize_names(names)
        if names is None:
            self._records.clear()
            return
        for name in names:
            self._records.pop(name, None)

    def list_stored(self) -> List[str]:
        return list(self._records.keys())

    def flush_cache(self) -> None:
        self._records.clear()
