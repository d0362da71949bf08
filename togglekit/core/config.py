"""Runtime settings for feature stores and snapshot repositories."""

from typing import Optional, Union

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Feature store backend (memory|cache|database|gate)
    STORE_DRIVER: str = "memory"
    # Dispatch unknown-feature events to the observability sink
    EVENTS_ENABLED: bool = True

    # Cache tier
    CACHE_BACKEND: str = "array"  # array|redis
    CACHE_PREFIX: str = "features"
    # Seconds, or None for forever. Validated by the cache store on write.
    CACHE_TTL: Optional[Union[int, str]] = 600
    REDIS_URL: str = "redis://localhost:6379/0"

    # Durable tier
    DATABASE_PATH: str = ".togglekit/features.db"
    DATABASE_TIMEOUT: float = 5.0
    DATABASE_MAX_RETRIES: int = 3

    # Snapshots (memory|cache|database)
    SNAPSHOT_DRIVER: str = "memory"
    SNAPSHOT_PREFIX: str = "togglekit:snapshots"
    SNAPSHOT_RETENTION_DAYS: int = 365

    model_config = {
        "env_prefix": "TOGGLEKIT_",
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings_cache
    _settings_cache = None
