"""Retry and failure handling for outbound lookups."""

from .retry_handler import (
    CircuitBreaker,
    ErrorCategory,
    ErrorClassifier,
    RetryConfig,
    RetryManager,
    RetryResult,
    with_retry,
)

__all__ = [
    "RetryManager",
    "RetryConfig",
    "RetryResult",
    "ErrorCategory",
    "ErrorClassifier",
    "CircuitBreaker",
    "with_retry",
]
