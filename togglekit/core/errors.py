"""Shared error codes and exception types for feature stores.

Centralizes error code enumeration so every backend reports failures
with the same vocabulary.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    INPUT_ERROR = "INPUT_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"  # Unique key collision in the table store
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"  # Concurrency retries used up
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"  # Mutation on a read-only store
    DATA_NOT_FOUND = "DATA_NOT_FOUND"
    ENCODE_FAILURE = "ENCODE_FAILURE"
    DECODE_FAILURE = "DECODE_FAILURE"


class FeatureStoreError(Exception):
    """Base class for all feature store errors."""

    default_code: ErrorCode = ErrorCode.INPUT_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        feature: Optional[str] = None,
        store: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.feature = feature
        self.store = store

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "feature": self.feature,
            "store": self.store,
        }


class ConfigurationError(FeatureStoreError):
    default_code = ErrorCode.CONFIGURATION_ERROR


class InvalidTtlConfigurationError(ConfigurationError):
    """Raised when a cache TTL is neither null nor a non-negative number."""

    @classmethod
    def invalid_type(cls, ttl: Any, store: Optional[str] = None) -> "InvalidTtlConfigurationError":
        return cls(
            f"Cache TTL must be a non-negative integer or null, got {type(ttl).__name__}: {ttl!r}",
            store=store,
        )


class UnsupportedDriverError(ConfigurationError):
    @classmethod
    def for_driver(cls, driver: str, kind: str = "store") -> "UnsupportedDriverError":
        return cls(f"Unsupported {kind} driver: {driver!r}")


class UniqueConstraintViolation(FeatureStoreError):
    """The table store rejected a row because its unique key already exists."""

    default_code = ErrorCode.CONSTRAINT_VIOLATION


class ConcurrencyConflictError(FeatureStoreError):
    default_code = ErrorCode.RETRY_EXHAUSTED

    def __init__(self, message: str, attempts: int = 0, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.attempts = attempts

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["attempts"] = self.attempts
        return data


class UnsupportedOperationError(FeatureStoreError):
    default_code = ErrorCode.UNSUPPORTED_OPERATION

    @classmethod
    def for_store(cls, operation: str, store: str) -> "UnsupportedOperationError":
        return cls(
            f"The {store} store is read-only and does not support {operation}()",
            store=store,
        )


class FeatureGroupNotFoundError(FeatureStoreError):
    default_code = ErrorCode.DATA_NOT_FOUND

    def __init__(self, name: str):
        super().__init__(f"Feature group [{name}] is not defined")
        self.group = name


class InvalidContextError(FeatureStoreError):
    default_code = ErrorCode.INPUT_ERROR


class ValueEncodingError(FeatureStoreError):
    default_code = ErrorCode.ENCODE_FAILURE


__all__ = [
    "ErrorCode",
    "FeatureStoreError",
    "ConfigurationError",
    "InvalidTtlConfigurationError",
    "UnsupportedDriverError",
    "UniqueConstraintViolation",
    "ConcurrencyConflictError",
    "UnsupportedOperationError",
    "FeatureGroupNotFoundError",
    "InvalidContextError",
    "ValueEncodingError",
]
