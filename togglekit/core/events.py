"""Observability sinks for feature store events."""

from __future__ import annotations

import logging
from typing import Any, Dict, Protocol, runtime_checkable

from togglekit.utils.metrics import unknown_features_total

logger = logging.getLogger(__name__)

UNKNOWN_FEATURE_RESOLVED = "feature.unknown_resolved"


@runtime_checkable
class EventSink(Protocol):
    """Receives named events with a payload."""

    def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingEventSink:
    """Default sink: logs events and counts unknown feature resolutions."""

    def __init__(self, store: str = "unknown"):
        self.store = store

    def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        context = payload.get("context")
        context_key = getattr(context, "key", str(context))
        if event_name == UNKNOWN_FEATURE_RESOLVED:
            unknown_features_total.labels(store=self.store).inc()
            logger.warning(
                f"Unknown feature '{payload.get('feature')}' resolved for {context_key}",
                extra={
                    "feature": payload.get("feature"),
                    "context_key": context_key,
                    "store": self.store,
                },
            )
        else:
            logger.info(f"Feature event {event_name}", extra={"store": self.store})


class NullEventSink:
    """Discards every event."""

    def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        return None


__all__ = [
    "UNKNOWN_FEATURE_RESOLVED",
    "EventSink",
    "LoggingEventSink",
    "NullEventSink",
]
