"""Cache-tier feature store.

Provides:
- A minimal cache abstraction (get/put/forever/has/forget/flush/keys)
- Process-local and Redis implementations of it
- CacheFeatureStore, which keeps feature values in the cache with a TTL
  and maintains index keys so stored features can be listed and purged
"""

from __future__ import annotations

import copy
import fnmatch
import json
import logging
import numbers
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import redis

from togglekit.core.context import Context
from togglekit.core.errors import ConfigurationError, InvalidTtlConfigurationError
from togglekit.core.feature_store.base import (
    FeatureRecord,
    FeatureStore,
    FeatureValue,
    StaticResolver,
)

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract key/value cache used by the cache tier."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def put(self, key: str, value: Any, ttl: int) -> None:
        """Store a value for ``ttl`` seconds."""
        pass

    @abstractmethod
    def forever(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def has(self, key: str) -> bool:
        pass

    @abstractmethod
    def forget(self, key: str) -> bool:
        pass

    @abstractmethod
    def flush(self) -> None:
        pass

    @abstractmethod
    def keys(self, pattern: str = "*") -> List[str]:
        """Enumerate keys matching a glob pattern."""
        pass


class ArrayCache(CacheBackend):
    """Process-local cache with per-key expiry.

    Values are deep-copied on the way in and out, matching the isolation a
    serializing backend gives.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._clock = clock

    def _live(self, key: str) -> bool:
        entry = self._data.get(key)
        if entry is None:
            return False
        _, expire_time = entry
        if expire_time is not None and self._clock() >= expire_time:
            del self._data[key]
            return False
        return True

    def get(self, key: str, default: Any = None) -> Any:
        if not self._live(key):
            return default
        return copy.deepcopy(self._data[key][0])

    def put(self, key: str, value: Any, ttl: int) -> None:
        if ttl <= 0:
            self.forget(key)
            return
        self._data[key] = (copy.deepcopy(value), self._clock() + ttl)

    def forever(self, key: str, value: Any) -> None:
        self._data[key] = (copy.deepcopy(value), None)

    def has(self, key: str) -> bool:
        return self._live(key)

    def forget(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def flush(self) -> None:
        self._data.clear()

    def keys(self, pattern: str = "*") -> List[str]:
        return [k for k in list(self._data) if self._live(k) and fnmatch.fnmatchcase(k, pattern)]


class RedisCache(CacheBackend):
    """Redis-backed cache storing JSON-encoded values."""

    def __init__(self, redis_client: Any, namespace: str = ""):
        self._redis = redis_client
        self._namespace = namespace

    @classmethod
    def from_url(cls, url: str, namespace: str = "") -> "RedisCache":
        return cls(redis.Redis.from_url(url, decode_responses=True), namespace=namespace)

    def _make_key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._redis.get(self._make_key(key))
        if raw is None:
            return default
        return json.loads(raw)

    def put(self, key: str, value: Any, ttl: int) -> None:
        if ttl <= 0:
            self.forget(key)
            return
        self._redis.set(self._make_key(key), json.dumps(value), ex=int(ttl))

    def forever(self, key: str, value: Any) -> None:
        self._redis.set(self._make_key(key), json.dumps(value))

    def has(self, key: str) -> bool:
        return bool(self._redis.exists(self._make_key(key)))

    def forget(self, key: str) -> bool:
        return bool(self._redis.delete(self._make_key(key)))

    def flush(self) -> None:
        if not self._namespace:
            self._redis.flushdb()
            return
        stale = list(self._redis.scan_iter(match=f"{self._namespace}*"))
        if stale:
            self._redis.delete(*stale)

    def keys(self, pattern: str = "*") -> List[str]:
        offset = len(self._namespace)
        return [
            key[offset:]
            for key in self._redis.scan_iter(match=self._make_key(pattern))
        ]


def parse_ttl(ttl: Any, store: str = "cache") -> Optional[int]:
    """Validate a TTL setting: None means forever, otherwise whole seconds."""
    if ttl is None:
        return None
    if isinstance(ttl, bool):
        raise InvalidTtlConfigurationError.invalid_type(ttl, store=store)
    if isinstance(ttl, numbers.Real):
        seconds = int(ttl)
    elif isinstance(ttl, str):
        try:
            seconds = int(float(ttl.strip()))
        except ValueError as e:
            raise InvalidTtlConfigurationError.invalid_type(ttl, store=store) from e
    else:
        raise InvalidTtlConfigurationError.invalid_type(ttl, store=store)
    if seconds < 0:
        raise InvalidTtlConfigurationError(
            f"Cache TTL must not be negative, got {ttl!r}", store=store
        )
    return seconds


class CacheFeatureStore(FeatureStore):
    """Feature store persisting values in a CacheBackend.

    Keys:
        ``{prefix}:{feature}:{context_key}``  the value envelope
        ``{prefix}:__index``                  names with stored values
        ``{prefix}:{feature}.__contexts``     context keys stored per feature

    Writers are not coordinated; concurrent writes to one key are
    last-write-wins.

    A ttl of 0 stores nothing: the value is forgotten at once, yet the name
    is still added to the index and the context list. ``list_stored`` then
    reports the name while ``retrieve`` returns None and ``resolve`` will
    evaluate again. Index entries are only removed by ``delete``, ``purge``
    and ``set_for_all_contexts``.
    """

    driver_name = "cache"

    INDEX_KEY = "__index"
    CONTEXTS_SUFFIX = ".__contexts"

    def __init__(
        self,
        cache: CacheBackend,
        prefix: str = "features",
        ttl: Any = None,
        *args: Any,
        **kwargs: Any,
    ):
        if not prefix:
            raise ConfigurationError("Cache prefix must not be empty", store=self.driver_name)
        super().__init__(*args, **kwargs)
        self.cache = cache
        self.prefix = prefix
        # Validated lazily on write
        self.ttl = ttl

    def cache_key(self, name: str, context_key: Optional[str] = None) -> str:
        if context_key is None:
            return f"{self.prefix}:{name}"
        return f"{self.prefix}:{name}:{context_key}"

    def resolve(self, name: str, context: Context) -> Any:
        cached = self.cache.get(self.cache_key(name, context.key))
        if cached is not None:
            self._record_hit()
            return FeatureValue.from_dict(cached).value

        if not self.is_defined(name):
            return self._unknown(name, context)

        value = self._evaluate(name, context)
        self.set(name, context, value)
        return value

    def retrieve(self, name: str, context: Context) -> Optional[FeatureRecord]:
        cached = self.cache.get(self.cache_key(name, context.key))
        if cached is None:
            return None
        return FeatureRecord(
            name=name,
            context_key=context.key,
            value=FeatureValue.from_dict(cached).value,
        )

    def set(self, name: str, context: Context, value: Any) -> None:
        ttl = parse_ttl(self.ttl, store=self.driver_name)
        envelope = FeatureValue.of(value).to_dict()
        key = self.cache_key(name, context.key)

        if ttl is None:
            self.cache.forever(key, envelope)
        else:
            self.cache.put(key, envelope, ttl)

        self._add_to_index(name)
        self._track_context(name, context.key)

    def set_for_all_contexts(self, name: str, value: Any) -> None:
        self._clear_contexts(name)
        self._remove_from_index(name)
        self._resolvers[name] = StaticResolver(value)

    def delete(self, name: str, context: Context) -> None:
        self.cache.forget(self.cache_key(name, context.key))

        remaining = [k for k in self._context_keys(name) if k != context.key]
        if remaining:
            self.cache.forever(self._contexts_key(name), remaining)
        else:
            self.cache.forget(self._contexts_key(name))
            self._remove_from_index(name)

    def purge(self, names: Optional[Iterable[str]] = None) -> None:
        names = self._normalize_names(names)
        if names is None:
            for name in self.list_stored():
                self._clear_contexts(name)
            self.cache.forget(self.cache_key(self.INDEX_KEY))
            return
        for name in names:
            self._clear_contexts(name)
            self._remove_from_index(name)

    def list_stored(self) -> List[str]:
        return list(self.cache.get(self.cache_key(self.INDEX_KEY), []))

    def flush_cache(self) -> None:
        stale = self.cache.keys(f"{self.prefix}:*")
        for key in stale:
            self.cache.forget(key)
        logger.debug(
            f"Flushed {len(stale)} cache keys under '{self.prefix}'",
            extra={"store": self.driver_name},
        )

    def _contexts_key(self, name: str) -> str:
        return self.cache_key(f"{name}{self.CONTEXTS_SUFFIX}")

    def _context_keys(self, name: str) -> List[str]:
        return list(self.cache.get(self._contexts_key(name), []))

    def _track_context(self, name: str, context_key: str) -> None:
        keys = self._context_keys(name)
        if context_key not in keys:
            keys.append(context_key)
            self.cache.forever(self._contexts_key(name), keys)

    def _clear_contexts(self, name: str) -> None:
        for context_key in self._context_keys(name):
            self.cache.forget(self.cache_key(name, context_key))
        self.cache.forget(self._contexts_key(name))

    def _add_to_index(self, name: str) -> None:
        index = self.list_stored()
        if name not in index:
            index.append(name)
            self.cache.forever(self.cache_key(self.INDEX_KEY), index)

    def _remove_from_index(self, name: str) -> None:
        index = self.list_stored()
        if name in index:
            self.cache.forever(
                self.cache_key(self.INDEX_KEY), [n for n in index if n != name]
            )
