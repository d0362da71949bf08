"""Percentage rollout assignment.

Sticky assignments hash ``"{seed}:{context_id}"`` with CRC32 into one of 101
buckets (0..100) and include the context when its bucket is below the
percentage. The same inputs always produce the same answer, and raising the
percentage never removes a context that was already included.
"""

from __future__ import annotations

import logging
import random
import zlib
from typing import Any, Optional

from togglekit.core.context import Context
from togglekit.core.feature_store.base import Resolver

logger = logging.getLogger(__name__)

BUCKET_COUNT = 101


def clamp_percentage(percentage: float) -> float:
    return max(0.0, min(100.0, float(percentage)))


def bucket_for(context_id: Any, seed: str) -> int:
    """Deterministic bucket in ``[0, 100]`` for a context id under a seed."""
    digest = zlib.crc32(f"{seed}:{context_id}".encode("utf-8"))
    return digest % BUCKET_COUNT


def assign(
    context_id: Any,
    feature_key: str,
    seed: Optional[str] = None,
    percentage: float = 100,
    sticky: bool = True,
    rng: Optional[random.Random] = None,
) -> bool:
    """Decide whether a context falls inside a percentage rollout.

    Args:
        context_id: Identifier of the context being assigned
        feature_key: Feature name, used as the seed when none is given
        seed: Optional hash seed; changing it reshuffles assignments
        percentage: Share of contexts to include, clamped to [0, 100]
        sticky: Hash-based when True, a fresh random draw when False
        rng: Random source for non-sticky draws

    Returns:
        True if the context is included
    """
    percentage = clamp_percentage(percentage)
    if percentage <= 0:
        return False
    if percentage >= 100:
        return True

    if not sticky:
        return (rng or random).randint(1, 100) <= percentage

    return bucket_for(context_id, seed or feature_key) < percentage


class PercentageResolver(Resolver):
    """Resolver that rolls a feature out to a share of contexts.

    Bound to a feature name so the default seed matches what ``assign``
    would use for that feature.
    """

    def __init__(
        self,
        feature_key: str,
        percentage: float,
        seed: Optional[str] = None,
        sticky: bool = True,
        rng: Optional[random.Random] = None,
    ):
        self.feature_key = feature_key
        self.percentage = clamp_percentage(percentage)
        self.seed = seed
        self.sticky = sticky
        self.rng = rng

    def evaluate(self, context: Context) -> bool:
        return assign(
            context.id,
            self.feature_key,
            seed=self.seed,
            percentage=self.percentage,
            sticky=self.sticky,
            rng=self.rng,
        )

    def __repr__(self) -> str:
        return f"PercentageResolver({self.feature_key!r}, {self.percentage})"


__all__ = ["BUCKET_COUNT", "bucket_for", "assign", "clamp_percentage", "PercentageResolver"]
