"""Build stores and snapshot repositories from Settings."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from togglekit.core.config import Settings, get_settings
from togglekit.core.database import SQLiteDatabase
from togglekit.core.errors import ConfigurationError, UnsupportedDriverError
from togglekit.core.events import EventSink
from togglekit.core.feature_store.base import FeatureStore
from togglekit.core.feature_store.cache import ArrayCache, CacheBackend, CacheFeatureStore, RedisCache
from togglekit.core.feature_store.database import DatabaseFeatureStore, FeatureTable
from togglekit.core.feature_store.gate import GateFeatureStore
from togglekit.core.feature_store.memory import InMemoryFeatureStore
from togglekit.core.snapshots.base import SnapshotRepository
from togglekit.core.snapshots.cache import CacheSnapshotRepository
from togglekit.core.snapshots.database import DatabaseSnapshotRepository
from togglekit.core.snapshots.memory import InMemorySnapshotRepository

logger = logging.getLogger(__name__)


def create_database(settings: Optional[Settings] = None) -> SQLiteDatabase:
    settings = settings or get_settings()
    return SQLiteDatabase(settings.DATABASE_PATH, timeout=settings.DATABASE_TIMEOUT)


def create_cache(settings: Optional[Settings] = None) -> CacheBackend:
    settings = settings or get_settings()
    backend = settings.CACHE_BACKEND.lower()
    if backend == "array":
        return ArrayCache()
    if backend == "redis":
        return RedisCache.from_url(settings.REDIS_URL)
    raise UnsupportedDriverError.for_driver(backend, kind="cache")


def create_store(
    settings: Optional[Settings] = None,
    cache: Optional[CacheBackend] = None,
    policy: Any = None,
    events: Optional[EventSink] = None,
    resolvers: Optional[Mapping[str, Any]] = None,
) -> FeatureStore:
    """Create the feature store selected by ``STORE_DRIVER``."""
    settings = settings or get_settings()
    driver = settings.STORE_DRIVER.lower()
    common = {
        "events": events,
        "resolvers": resolvers,
        "events_enabled": settings.EVENTS_ENABLED,
    }

    if driver == "memory":
        store: FeatureStore = InMemoryFeatureStore(**common)
    elif driver == "cache":
        store = CacheFeatureStore(
            cache or create_cache(settings),
            prefix=settings.CACHE_PREFIX,
            ttl=settings.CACHE_TTL,
            **common,
        )
    elif driver == "database":
        store = DatabaseFeatureStore(
            FeatureTable(create_database(settings)),
            max_retries=settings.DATABASE_MAX_RETRIES,
            **common,
        )
    elif driver == "gate":
        if policy is None:
            raise ConfigurationError("The gate store needs a policy decision point", store="gate")
        store = GateFeatureStore(policy, **common)
    else:
        raise UnsupportedDriverError.for_driver(driver)

    logger.info(f"Using {driver} feature store", extra={"store": driver})
    return store


def create_snapshot_repository(
    store: FeatureStore,
    settings: Optional[Settings] = None,
    cache: Optional[CacheBackend] = None,
) -> SnapshotRepository:
    """Create the snapshot repository selected by ``SNAPSHOT_DRIVER``."""
    settings = settings or get_settings()
    driver = settings.SNAPSHOT_DRIVER.lower()

    if driver == "memory":
        return InMemorySnapshotRepository(store)
    if driver == "cache":
        return CacheSnapshotRepository(
            store,
            cache or create_cache(settings),
            prefix=settings.SNAPSHOT_PREFIX,
            retention_days=settings.SNAPSHOT_RETENTION_DAYS,
        )
    if driver == "database":
        return DatabaseSnapshotRepository(store, create_database(settings))
    raise UnsupportedDriverError.for_driver(driver, kind="snapshot")
