import os
from typing import Any, Dict, List, Tuple

import pytest

from togglekit.core.config import reset_settings
from togglekit.core.context import Context
from togglekit.core.database import SQLiteDatabase


# Environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "TOGGLEKIT_LOG_LEVEL",
    "TOGGLEKIT_LOG_JSON",
    "TOGGLEKIT_STORE_DRIVER",
    "TOGGLEKIT_EVENTS_ENABLED",
    "TOGGLEKIT_CACHE_BACKEND",
    "TOGGLEKIT_CACHE_PREFIX",
    "TOGGLEKIT_CACHE_TTL",
    "TOGGLEKIT_REDIS_URL",
    "TOGGLEKIT_DATABASE_PATH",
    "TOGGLEKIT_DATABASE_TIMEOUT",
    "TOGGLEKIT_DATABASE_MAX_RETRIES",
    "TOGGLEKIT_SNAPSHOT_DRIVER",
    "TOGGLEKIT_SNAPSHOT_PREFIX",
    "TOGGLEKIT_SNAPSHOT_RETENTION_DAYS",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables and cached settings between tests."""
    backup = {k: os.environ.get(k) for k in _ENV_VARS_TO_ISOLATE}
    reset_settings()
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        reset_settings()


class CollectingEventSink:
    """Event sink that records every emitted event."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event_name: str, payload: Dict[str, Any]) -> None:
        self.events.append((event_name, payload))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def features(self) -> List[str]:
        return [payload["feature"] for _, payload in self.events]


@pytest.fixture
def events():
    return CollectingEventSink()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "features.db"


@pytest.fixture
def database(db_path):
    return SQLiteDatabase(db_path, timeout=1.0)


@pytest.fixture
def admin():
    return Context("user", "admin")


@pytest.fixture
def guest_user():
    return Context("user", "guest")
