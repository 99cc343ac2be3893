"""
Retry feature: bounded retries with backoff, jitter and a retry predicate.
"""
from .types import (
    RetryConfig,
    RetryEvent,
    RetryEventListener,
    ShouldRetry,
    validate_retry_config,
)
from .config import (
    DEFAULT_RETRY_CONFIG,
    async_sleep,
    calculate_retry_delay,
    is_retryable_error,
    merge_retry_config,
)
from .feature import RetryFeature

__all__ = [
    # Types
    "RetryConfig",
    "RetryEvent",
    "RetryEventListener",
    "ShouldRetry",
    "validate_retry_config",
    # Config
    "DEFAULT_RETRY_CONFIG",
    "async_sleep",
    "calculate_retry_delay",
    "is_retryable_error",
    "merge_retry_config",
    # Feature
    "RetryFeature",
]
