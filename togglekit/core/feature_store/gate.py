"""Delegated-authorization feature store.

Every resolution is forwarded to a policy decision point. The store holds no
state of its own, so all mutations are rejected.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional

from togglekit.core.context import Context
from togglekit.core.errors import UnsupportedOperationError
from togglekit.core.feature_store.base import FeatureRecord, FeatureStore

logger = logging.getLogger(__name__)


class PolicyDecisionPoint(ABC):
    """Decides whether a context may use a feature.

    Returns True/False for an explicit decision, or None for no opinion.
    """

    @abstractmethod
    def decide(self, context: Context, feature_name: str) -> Optional[bool]:
        pass


class CallablePolicy(PolicyDecisionPoint):
    def __init__(self, func: Callable[[Context, str], Optional[bool]]):
        self.func = func

    def decide(self, context: Context, feature_name: str) -> Optional[bool]:
        return self.func(context, feature_name)


def as_policy(policy: Any) -> PolicyDecisionPoint:
    if isinstance(policy, PolicyDecisionPoint):
        return policy
    if callable(policy):
        return CallablePolicy(policy)
    raise TypeError(f"Policy must be a PolicyDecisionPoint or callable, got {type(policy).__name__}")


class GateFeatureStore(FeatureStore):
    driver_name = "gate"

    def __init__(self, policy: Any, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.policy = as_policy(policy)

    def resolve(self, name: str, context: Context) -> Any:
        decision = self.policy.decide(context, name)
        if decision is None:
            return self._unknown(name, context)
        self._record_hit()
        return bool(decision)

    def retrieve(self, name: str, context: Context) -> Optional[FeatureRecord]:
        return None

    def set(self, name: str, context: Context, value: Any) -> None:
        raise UnsupportedOperationError.for_store("set", self.driver_name)

    def set_for_all_contexts(self, name: str, value: Any) -> None:
        raise UnsupportedOperationError.for_store("set_for_all_contexts", self.driver_name)

    def delete(self, name: str, context: Context) -> None:
        raise UnsupportedOperationError.for_store("delete", self.driver_name)

    def purge(self, names: Optional[Iterable[str]] = None) -> None:
        raise UnsupportedOperationError.for_store("purge", self.driver_name)

    def list_stored(self) -> List[str]:
        return []

    def flush_cache(self) -> None:
        return None
