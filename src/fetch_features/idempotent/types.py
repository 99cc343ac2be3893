"""
Types for the idempotent feature.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from ..cache.types import HashAlgorithm, parse_hash_algorithm, validate_ttl
from ..errors import create_validation_error
from ..types import CloneMode, RequestDescriptor

DEFAULT_IDEMPOTENT_TTL_MS = 30_000
"""Default coalescing/cache window (ms)."""

MAX_IDEMPOTENT_ENTRIES = 5000
"""Capacity of the idempotent response cache."""

DEFAULT_INCLUDE_HEADERS = ["content-type", "authorization", "x-api-key"]
"""Headers that take part in the idempotent key unless overridden."""

IDEMPOTENT_KEY_PREFIX = "idempotent:"

OnDuplicate = Callable[[RequestDescriptor, str], None]
"""Called with the duplicate call's descriptor and the idempotent key."""


@dataclass
class IdempotentConfig:
    """Per-call idempotent options."""

    ttl_ms: int = DEFAULT_IDEMPOTENT_TTL_MS
    key: Optional[str] = None
    """Explicit idempotent key; prefixed with ``idempotent:`` when missing."""

    include_headers: Optional[List[str]] = None
    """Header names in the key. None means ``DEFAULT_INCLUDE_HEADERS``."""

    include_all_headers: bool = False
    hash_algorithm: Union[HashAlgorithm, str] = HashAlgorithm.FNV1A
    on_duplicate: Optional[OnDuplicate] = None
    """Invoked on cache hits and on joins; failures are logged, never raised."""

    clone: Union[CloneMode, str] = CloneMode.DEEP
    """What cache hits and coalesced callers receive."""

    def __post_init__(self) -> None:
        validate_idempotent_config(self)


def validate_idempotent_config(config: IdempotentConfig) -> None:
    """Validate an idempotent config in place."""
    validate_ttl(config.ttl_ms)

    if config.include_headers is not None and (
        isinstance(config.include_headers, str)
        or not isinstance(config.include_headers, (list, tuple))
    ):
        raise create_validation_error("includeHeaders must be an array", "INVALID_HEADERS")

    config.hash_algorithm = parse_hash_algorithm(config.hash_algorithm)

    try:
        config.clone = CloneMode(config.clone)
    except ValueError:
        raise create_validation_error(
            "clone must be one of: none, shallow, deep", "INVALID_CLONE"
        ) from None


@dataclass
class IdempotentStats:
    """Snapshot of idempotent feature statistics."""

    total_requests: int = 0
    duplicates_blocked: int = 0
    pending_requests_reused: int = 0
    cache_hits: int = 0
    actual_network_requests: int = 0
    avg_response_time_ms: float = 0.0
    key_generation_time_ms: float = 0.0
    """Running mean of key generation time."""

    @property
    def duplicate_rate(self) -> float:
        """Percentage of calls that did not reach the network."""
        if self.total_requests <= 0:
            return 0.0
        return self.duplicates_blocked / self.total_requests * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "duplicates_blocked": self.duplicates_blocked,
            "pending_requests_reused": self.pending_requests_reused,
            "cache_hits": self.cache_hits,
            "actual_network_requests": self.actual_network_requests,
            "duplicate_rate": self.duplicate_rate,
            "avg_response_time_ms": self.avg_response_time_ms,
            "key_generation_time_ms": self.key_generation_time_ms,
        }


class IdempotentEventType(str, Enum):
    """Event types for idempotent operations."""

    HIT = "idempotent:hit"
    JOIN = "idempotent:join"
    LEAD = "idempotent:lead"
    COMPLETE = "idempotent:complete"
    ERROR = "idempotent:error"
    CLEAR = "idempotent:clear"


@dataclass
class IdempotentEvent:
    """Idempotent event."""

    type: IdempotentEventType
    key: Optional[str]
    timestamp: float
    metadata: Optional[Dict[str, Any]] = None


IdempotentEventListener = Callable[[IdempotentEvent], None]
"""Event listener type."""


DEFAULT_IDEMPOTENT_CONFIG = IdempotentConfig()


def merge_idempotent_config(
    config: Optional[IdempotentConfig] = None, **overrides: Any
) -> IdempotentConfig:
    """Fill an idempotent config from the defaults; the result is validated."""
    return replace(config or DEFAULT_IDEMPOTENT_CONFIG, **overrides)
