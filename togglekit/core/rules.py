"""Rule-based resolvers.

Provides resolvers that decide a value from the clock or the context:
- Time windows and schedules
- Attribute comparisons against the context's source object
- Conditionals and AND/OR composition of other resolvers
"""

from __future__ import annotations

import logging
import operator
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from togglekit.core.context import Context
from togglekit.core.errors import ConfigurationError
from togglekit.core.feature_store.base import Resolver, as_resolver

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(moment: datetime) -> datetime:
    # Naive datetimes are read as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def in_window(now: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    """True when ``start <= now <= end``; a missing bound is open."""
    now = _aware(now)
    if start is not None and now < _aware(start):
        return False
    if end is not None and now > _aware(end):
        return False
    return True


class TimeWindowResolver(Resolver):
    """Resolver that is active only between two instants (both inclusive).

    Either bound may be omitted: no ``start`` means already active, no
    ``end`` means it never deactivates.
    """

    def __init__(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        active: Any = True,
        inactive: Any = False,
        clock: Optional[Clock] = None,
    ):
        if start is not None and end is not None and _aware(start) > _aware(end):
            raise ConfigurationError(
                f"Time window starts after it ends: {start.isoformat()} > {end.isoformat()}"
            )
        self.start = start
        self.end = end
        self.active = as_resolver(active)
        self.inactive = as_resolver(inactive)
        self.clock = clock or _utc_now

    def is_active(self) -> bool:
        return in_window(self.clock(), self.start, self.end)

    def evaluate(self, context: Context) -> Any:
        if self.is_active():
            return self.active.evaluate(context)
        return self.inactive.evaluate(context)

    def __repr__(self) -> str:
        return f"TimeWindowResolver(start={self.start!r}, end={self.end!r})"


class ScheduleResolver(Resolver):
    """Resolver that walks a list of ``(start, end, value)`` periods.

    The first period containing the current time wins; outside every period
    the ``default`` applies. Values may themselves be resolvers.
    """

    def __init__(
        self,
        periods: Sequence[Tuple[Optional[datetime], Optional[datetime], Any]],
        default: Any = False,
        clock: Optional[Clock] = None,
    ):
        self.periods: List[Tuple[Optional[datetime], Optional[datetime], Resolver]] = []
        for start, end, value in periods:
            if start is not None and end is not None and _aware(start) > _aware(end):
                raise ConfigurationError(
                    f"Schedule period starts after it ends: {start.isoformat()} > {end.isoformat()}"
                )
            self.periods.append((start, end, as_resolver(value)))
        self.default = as_resolver(default)
        self.clock = clock or _utc_now

    def evaluate(self, context: Context) -> Any:
        now = self.clock()
        for start, end, resolver in self.periods:
            if in_window(now, start, end):
                return resolver.evaluate(context)
        return self.default.evaluate(context)

    def __repr__(self) -> str:
        return f"ScheduleResolver({len(self.periods)} periods)"


def _contains(container: Any, item: Any) -> bool:
    return item in container


def _matches(value: Any, pattern: str) -> bool:
    return bool(re.match(pattern, str(value)))


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "gte": operator.ge,
    "lt": operator.lt,
    "lte": operator.le,
    "in": lambda actual, expected: actual in expected,
    "not_in": lambda actual, expected: actual not in expected,
    "contains": _contains,
    "regex": _matches,
}


def context_attribute(context: Context, attribute: str) -> Any:
    """Read ``attribute`` from a context.

    ``kind`` and ``id`` come from the context itself; anything else is looked
    up on its source object (mapping key or attribute).
    """
    if attribute in ("kind", "id"):
        return getattr(context, attribute)
    source = context.source
    if source is None:
        return None
    if isinstance(source, dict):
        return source.get(attribute)
    value = getattr(source, attribute, None)
    return value() if callable(value) else value


class AttributeResolver(Resolver):
    """Resolver comparing one context attribute against a value."""

    def __init__(self, attribute: str, op: str, value: Any):
        if op not in OPERATORS:
            raise ConfigurationError(
                f"Unknown attribute operator [{op}]; expected one of {sorted(OPERATORS)}"
            )
        self.attribute = attribute
        self.op = op
        self.value = value

    def evaluate(self, context: Context) -> bool:
        actual = context_attribute(context, self.attribute)
        if actual is None:
            return False
        try:
            return bool(OPERATORS[self.op](actual, self.value))
        except TypeError as e:
            logger.debug(
                f"Attribute '{self.attribute}' not comparable with {self.op}: {e}",
                extra={"context_key": context.key},
            )
            return False

    def __repr__(self) -> str:
        return f"AttributeResolver({self.attribute!r}, {self.op!r}, {self.value!r})"


class ConditionalResolver(Resolver):
    """Resolver that picks ``then`` or ``otherwise`` from a condition."""

    def __init__(self, condition: Any, then: Any = True, otherwise: Any = False):
        self.condition = as_resolver(condition)
        self.then = as_resolver(then)
        self.otherwise = as_resolver(otherwise)

    def evaluate(self, context: Context) -> Any:
        if self.condition.evaluate(context):
            return self.then.evaluate(context)
        return self.otherwise.evaluate(context)


class CompositeResolver(Resolver):
    """Combine resolvers with AND (``require_all``) or OR logic.

    Short-circuits like ``all``/``any``. An empty composite is False.
    """

    def __init__(self, resolvers: Sequence[Any], require_all: bool = True):
        self.resolvers = [as_resolver(r) for r in resolvers]
        self.require_all = require_all

    def evaluate(self, context: Context) -> bool:
        if not self.resolvers:
            return False
        results = (bool(r.evaluate(context)) for r in self.resolvers)
        return all(results) if self.require_all else any(results)

    def __repr__(self) -> str:
        mode = "all" if self.require_all else "any"
        return f"CompositeResolver({len(self.resolvers)} resolvers, {mode})"


__all__ = [
    "in_window",
    "context_attribute",
    "OPERATORS",
    "TimeWindowResolver",
    "ScheduleResolver",
    "AttributeResolver",
    "ConditionalResolver",
    "CompositeResolver",
]
