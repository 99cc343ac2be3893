"""
Type definitions for the retry feature
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Optional

from ..errors import create_validation_error


ShouldRetry = Callable[[BaseException, int], bool]


@dataclass
class RetryConfig:
    """Retry configuration"""

    retries: int = 3
    """Number of retries after the first attempt. Default: 3"""

    delay_ms: float = 1000
    """Base delay between attempts (ms). Default: 1000"""

    backoff_factor: float = 1.0
    """Multiplier applied per retry; 1 means a fixed delay. Default: 1.0"""

    jitter: float = 0.0
    """Random extra delay as a fraction (0-1) of the base delay. Default: 0"""

    should_retry: Optional[ShouldRetry] = None
    """Custom predicate ``(error, attempt_index) -> bool``"""

    max_delay_ms: Optional[float] = None
    """Upper bound for a single delay (ms). Default: no cap"""

    def __post_init__(self) -> None:
        validate_retry_config(self)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_retry_config(config: RetryConfig) -> None:
    """Validate a retry config; raises a VALIDATION_ERROR on the first bad field."""
    if (
        isinstance(config.retries, bool)
        or not isinstance(config.retries, int)
        or config.retries < 0
    ):
        raise create_validation_error("Retries must be non-negative", "INVALID_RETRIES")

    if not _is_number(config.delay_ms) or not config.delay_ms >= 0:
        raise create_validation_error("Delay must be non-negative", "INVALID_DELAY")

    if not _is_number(config.backoff_factor) or not config.backoff_factor > 0:
        raise create_validation_error(
            "Backoff factor must be positive", "INVALID_BACKOFF_FACTOR"
        )

    if not _is_number(config.jitter) or not 0 <= config.jitter <= 1:
        raise create_validation_error("Jitter must be between 0 and 1", "INVALID_JITTER")

    if config.max_delay_ms is not None and (
        not _is_number(config.max_delay_ms) or not config.max_delay_ms >= 0
    ):
        raise create_validation_error(
            "Max delay must be non-negative", "INVALID_MAX_DELAY"
        )


# Event types
EventType = Literal[
    "attempt:start",
    "attempt:success",
    "attempt:fail",
    "retry:wait",
]


@dataclass
class RetryEvent:
    """Event emitted by the retry feature"""

    type: EventType
    """Event type"""

    attempt: int
    """Current attempt index (0-based)"""

    data: dict[str, Any] = field(default_factory=dict)
    """Event-specific data"""


RetryEventListener = Callable[[RetryEvent], None]
