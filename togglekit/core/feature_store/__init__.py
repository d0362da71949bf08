"""Feature Store Module.

Provides interchangeable feature storage backends:
- In-memory store
- Cache-tier store (array or Redis cache)
- Durable SQLite store with feature groups
- Delegated-authorization (gate) store
"""

from togglekit.core.feature_store.base import (
    UNKNOWN_FEATURE_VALUE,
    INTERNAL_PREFIX,
    ValueKind,
    FeatureValue,
    Resolver,
    StaticResolver,
    CallableResolver,
    as_resolver,
    FeatureRecord,
    FeatureStore,
    is_internal,
)
from togglekit.core.feature_store.memory import InMemoryFeatureStore
from togglekit.core.feature_store.cache import (
    CacheBackend,
    ArrayCache,
    RedisCache,
    CacheFeatureStore,
    parse_ttl,
)
from togglekit.core.feature_store.database import (
    FeatureRow,
    FeatureTable,
    DatabaseFeatureStore,
)
from togglekit.core.feature_store.gate import (
    PolicyDecisionPoint,
    CallablePolicy,
    GateFeatureStore,
)
from togglekit.core.feature_store.groups import FeatureGroup, DatabaseGroupRepository

__all__ = [
    # Contract
    "UNKNOWN_FEATURE_VALUE",
    "INTERNAL_PREFIX",
    "ValueKind",
    "FeatureValue",
    "Resolver",
    "StaticResolver",
    "CallableResolver",
    "as_resolver",
    "FeatureRecord",
    "FeatureStore",
    "is_internal",
    # Backends
    "InMemoryFeatureStore",
    "CacheBackend",
    "ArrayCache",
    "RedisCache",
    "CacheFeatureStore",
    "parse_ttl",
    "FeatureRow",
    "FeatureTable",
    "DatabaseFeatureStore",
    "PolicyDecisionPoint",
    "CallablePolicy",
    "GateFeatureStore",
    # Groups
    "FeatureGroup",
    "DatabaseGroupRepository",
]
