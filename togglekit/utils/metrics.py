"""Prometheus metrics for feature resolution and snapshot auditing.

All metric objects are defined at import time against the default registry.
"""

from __future__ import annotations

from prometheus_client import Counter

feature_resolutions_total = Counter(
    "togglekit_feature_resolutions_total",
    "Feature resolutions by outcome",
    ["store", "outcome"],  # outcome: hit|miss|unknown
)

unknown_features_total = Counter(
    "togglekit_unknown_features_total",
    "Resolutions of features with no registered resolver",
    ["store"],
)

store_conflicts_total = Counter(
    "togglekit_store_conflicts_total",
    "Unique constraint collisions recovered (or not) by retry",
    ["store", "operation"],
)

snapshot_operations_total = Counter(
    "togglekit_snapshot_operations_total",
    "Snapshot repository operations",
    ["driver", "operation"],
)


__all__ = [
    "feature_resolutions_total",
    "unknown_features_total",
    "store_conflicts_total",
    "snapshot_operations_total",
]
