"""
Configuration utilities for the retry feature
"""
import asyncio
import dataclasses
import math
import random
from typing import Any, Callable, Optional

import httpx

from ..errors import RequestError, RequestErrorType
from .types import RetryConfig


# Default retry configuration
DEFAULT_RETRY_CONFIG = RetryConfig(
    retries=3,
    delay_ms=1000,
    backoff_factor=1.0,
    jitter=0.0,
)

_RETRYABLE_PATTERNS = [
    "network",
    "timeout",
    "timed out",
    "connection",
    "refused",
    "reset",
]


def calculate_retry_delay(
    attempt: int,
    config: RetryConfig,
    random_fn: Callable[[], float] = random.random,
) -> int:
    """
    Calculate the delay before retry number ``attempt``.

    delay = floor(base + base * jitter * random()), base = delay * factor^attempt

    Args:
        attempt: The retry index (0 for the first retry)
        config: Retry configuration
        random_fn: Source of values in [0, 1)

    Returns:
        Delay in milliseconds
    """
    base = config.delay_ms * (config.backoff_factor ** attempt)
    jittered = base + base * config.jitter * random_fn()
    if config.max_delay_ms is not None:
        jittered = min(jittered, config.max_delay_ms)
    return max(0, math.floor(jittered))


def is_retryable_error(error: BaseException) -> bool:
    """
    Default retry predicate.

    Retries network-level failures and HTTP 5xx; never retries HTTP 4xx,
    validation errors, or aborted requests.

    Args:
        error: The error to check

    Returns:
        Whether the error is retryable
    """
    if isinstance(error, RequestError):
        if error.code == "ABORTED":
            return False
        if error.status:
            return 500 <= error.status <= 599
        return error.type in (RequestErrorType.NETWORK_ERROR, RequestErrorType.TIMEOUT_ERROR)

    if isinstance(error, httpx.HTTPStatusError):
        return 500 <= error.response.status_code <= 599

    if isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True

    if not isinstance(error, Exception):
        return False

    # Check error message for common network issues
    message = str(error).lower()
    if any(pattern in message for pattern in _RETRYABLE_PATTERNS):
        return True

    # Check cause chain
    if error.__cause__ is not None:
        return is_retryable_error(error.__cause__)

    return False


def merge_retry_config(config: Optional[RetryConfig] = None, **overrides: Any) -> RetryConfig:
    """
    Merge configuration with defaults.

    Args:
        config: User-provided configuration
        **overrides: Fields to replace; the result is re-validated

    Returns:
        A new, validated configuration
    """
    return dataclasses.replace(config or DEFAULT_RETRY_CONFIG, **overrides)


async def async_sleep(milliseconds: float) -> None:
    """
    Sleep for a specified duration (async).

    Args:
        milliseconds: Duration to sleep
    """
    await asyncio.sleep(milliseconds / 1000)
