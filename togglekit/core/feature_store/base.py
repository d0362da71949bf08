"""Feature Store Contract.

Provides the pieces every storage backend shares:
- Tagged feature values with an explicit JSON codec
- Resolvers (static values or functions of the context)
- The abstract FeatureStore with unknown-feature handling
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from togglekit.core.context import Context
from togglekit.core.errors import ErrorCode, FeatureStoreError, ValueEncodingError
from togglekit.core.events import UNKNOWN_FEATURE_RESOLVED, EventSink, LoggingEventSink
from togglekit.utils.metrics import feature_resolutions_total

logger = logging.getLogger(__name__)

# Returned for features with no resolver. Never cached.
UNKNOWN_FEATURE_VALUE = False

# Reserved name prefix for internal keys (skipped by snapshot restore).
INTERNAL_PREFIX = "__"


class ValueKind(str, Enum):
    """Variant tag for stored feature values."""
    NULL = "null"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    STRUCTURED = "structured"


@dataclass(frozen=True)
class FeatureValue:
    """A feature value tagged with its kind.

    The tag keeps ``None``/``False``/``0``/``""`` distinct from each other and
    from a storage miss when values pass through string-only backends.
    """
    kind: ValueKind
    value: Any

    @classmethod
    def of(cls, value: Any) -> "FeatureValue":
        if value is None:
            return cls(ValueKind.NULL, None)
        # bool before int: bool is an int subclass
        if isinstance(value, bool):
            return cls(ValueKind.BOOL, value)
        if isinstance(value, int):
            return cls(ValueKind.INT, value)
        if isinstance(value, float):
            return cls(ValueKind.FLOAT, value)
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        if isinstance(value, (dict, list, tuple)):
            try:
                normalized = json.loads(json.dumps(value))
            except (TypeError, ValueError) as e:
                raise ValueEncodingError(f"Feature value is not serializable: {e}") from e
            return cls(ValueKind.STRUCTURED, normalized)
        raise ValueEncodingError(
            f"Unsupported feature value type: {type(value).__name__}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"t": self.kind.value, "v": self.value}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeatureValue":
        try:
            kind = ValueKind(data["t"])
            value = data["v"]
        except (KeyError, ValueError, TypeError) as e:
            raise FeatureStoreError(
                f"Malformed feature value envelope: {data!r}",
                code=ErrorCode.DECODE_FAILURE,
            ) from e
        if kind is ValueKind.FLOAT and isinstance(value, int):
            value = float(value)
        return cls(kind, value)

    @classmethod
    def from_json(cls, raw: str) -> "FeatureValue":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise FeatureStoreError(
                f"Malformed feature value: {raw!r}",
                code=ErrorCode.DECODE_FAILURE,
            ) from e
        return cls.from_dict(data)


def encode_value(value: Any) -> str:
    return FeatureValue.of(value).to_json()


def decode_value(raw: str) -> Any:
    return FeatureValue.from_json(raw).value


class Resolver(ABC):
    """Determines a feature's value for a context."""

    @abstractmethod
    def evaluate(self, context: Context) -> Any:
        pass


class StaticResolver(Resolver):
    """Resolver that always returns the same value."""

    def __init__(self, value: Any):
        self.value = value

    def evaluate(self, context: Context) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"StaticResolver({self.value!r})"


class CallableResolver(Resolver):
    """Resolver backed by a function of the context."""

    def __init__(self, func: Callable[[Context], Any]):
        self.func = func

    def evaluate(self, context: Context) -> Any:
        return self.func(context)

    def __repr__(self) -> str:
        return f"CallableResolver({getattr(self.func, '__name__', self.func)!r})"


def as_resolver(resolver: Any) -> Resolver:
    if isinstance(resolver, Resolver):
        return resolver
    if callable(resolver):
        return CallableResolver(resolver)
    return StaticResolver(resolver)


@dataclass
class FeatureRecord:
    """A materialized value for one (feature, context) pair."""
    name: str
    context_key: str
    value: Any
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) > self.expires_at


def is_internal(name: str) -> bool:
    return name.startswith(INTERNAL_PREFIX)


class FeatureStore(ABC):
    """Abstract base class for feature storage backends."""

    driver_name = "abstract"

    def __init__(
        self,
        events: Optional[EventSink] = None,
        resolvers: Optional[Mapping[str, Any]] = None,
        events_enabled: bool = True,
    ):
        self._events = events or LoggingEventSink(store=self.driver_name)
        self._events_enabled = events_enabled
        self._resolvers: Dict[str, Resolver] = {}
        for name, resolver in (resolvers or {}).items():
            self.define(name, resolver)

    def define(self, name: str, resolver: Any = None) -> None:
        """Register a resolver or static value. Last definition wins."""
        self._resolvers[name] = as_resolver(resolver)

    def is_defined(self, name: str) -> bool:
        return name in self._resolvers

    def list_defined(self) -> List[str]:
        return list(self._resolvers.keys())

    @abstractmethod
    def resolve(self, name: str, context: Context) -> Any:
        """Get a feature's value, computing and storing it on a miss."""
        pass

    @abstractmethod
    def set(self, name: str, context: Context, value: Any) -> None:
        """Write a value for one context, bypassing the resolver."""
        pass

    @abstractmethod
    def set_for_all_contexts(self, name: str, value: Any) -> None:
        """Redefine a feature as a constant and drop its stored values."""
        pass

    @abstractmethod
    def delete(self, name: str, context: Context) -> None:
        pass

    @abstractmethod
    def purge(self, names: Optional[Iterable[str]] = None) -> None:
        """Remove stored values for the given features, or all when None."""
        pass

    @abstractmethod
    def list_stored(self) -> List[str]:
        pass

    @abstractmethod
    def flush_cache(self) -> None:
        pass

    @abstractmethod
    def retrieve(self, name: str, context: Context) -> Optional[FeatureRecord]:
        """Look up a stored record without resolving."""
        pass

    def resolve_many(
        self, features: Mapping[str, Sequence[Context]]
    ) -> Dict[str, List[Any]]:
        return {
            name: [self.resolve(name, context) for context in contexts]
            for name, contexts in features.items()
        }

    def values_for(self, context: Context) -> Dict[str, Any]:
        """Map of every stored feature value for one context."""
        values: Dict[str, Any] = {}
        for name in self.list_stored():
            record = self.retrieve(name, context)
            if record is not None:
                values[name] = record.value
        return values

    def _evaluate(self, name: str, context: Context) -> Any:
        value = self._resolvers[name].evaluate(context)
        feature_resolutions_total.labels(store=self.driver_name, outcome="miss").inc()
        return value

    def _record_hit(self) -> None:
        feature_resolutions_total.labels(store=self.driver_name, outcome="hit").inc()

    def _unknown(self, name: str, context: Context) -> Any:
        feature_resolutions_total.labels(store=self.driver_name, outcome="unknown").inc()
        if self._events_enabled:
            self._events.emit(
                UNKNOWN_FEATURE_RESOLVED, {"feature": name, "context": context}
            )
        return UNKNOWN_FEATURE_VALUE

    @staticmethod
    def _normalize_names(names: Optional[Iterable[str]]) -> Optional[List[str]]:
        if names is None:
            return None
        if isinstance(names, str):
            return [names]
        return list(names)


__all__ = [
    "UNKNOWN_FEATURE_VALUE",
    "INTERNAL_PREFIX",
    "ValueKind",
    "FeatureValue",
    "encode_value",
    "decode_value",
    "Resolver",
    "StaticResolver",
    "CallableResolver",
    "as_resolver",
    "FeatureRecord",
    "FeatureStore",
    "is_internal",
]
