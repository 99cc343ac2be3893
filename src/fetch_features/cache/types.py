"""
Types for the cache package.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, List, Optional, Union

from ..errors import create_validation_error
from ..types import CloneMode


class HashAlgorithm(str, Enum):
    """Supported key hash algorithms."""

    FNV1A = "fnv1a"
    """32-bit FNV-1a."""

    FNV1A64 = "fnv1a64"
    """64-bit FNV-1a."""

    SIMPLE = "simple"
    """31-multiplier string hash, the cheap fallback."""


SUPPORTED_HASH_ALGORITHMS = tuple(algorithm.value for algorithm in HashAlgorithm)


def parse_hash_algorithm(value: Union[HashAlgorithm, str]) -> HashAlgorithm:
    """Resolve a hash algorithm name, failing with a validation error."""
    try:
        return HashAlgorithm(value)
    except ValueError:
        raise create_validation_error(
            f"hashAlgorithm must be one of: {', '.join(SUPPORTED_HASH_ALGORITHMS)}",
            "INVALID_HASH_ALGORITHM",
        ) from None


@dataclass
class CacheKeyConfig:
    """Configuration for cache key generation."""

    include_headers: List[str] = field(default_factory=list)
    """Header names (case-insensitive) that take part in the key."""

    include_all_headers: bool = False
    """Let every header take part in the key."""

    max_key_length: int = 512
    """Keys longer than this are hashed and truncated."""

    enable_hash_cache: bool = True
    """Memoize keys per descriptor instance."""

    hash_algorithm: Union[HashAlgorithm, str] = HashAlgorithm.FNV1A

    def __post_init__(self) -> None:
        validate_cache_key_config(self)


def validate_cache_key_config(config: CacheKeyConfig) -> None:
    """Validate a key config in place, normalizing the hash algorithm."""
    config.hash_algorithm = parse_hash_algorithm(config.hash_algorithm)

    if isinstance(config.include_headers, str) or not isinstance(
        config.include_headers, (list, tuple)
    ):
        raise create_validation_error("includeHeaders must be an array", "INVALID_HEADERS")

    if (
        isinstance(config.max_key_length, bool)
        or not isinstance(config.max_key_length, int)
        or config.max_key_length <= 0
    ):
        raise create_validation_error(
            "maxKeyLength must be a positive integer", "INVALID_MAX_KEY_LENGTH"
        )


@dataclass
class CacheItem:
    """A cached value and its bookkeeping."""

    key: str
    data: Any
    timestamp: float
    """Creation time (ms)."""

    ttl: float
    """Time to live (ms)."""

    access_time: float
    """Last read time (ms)."""

    access_count: int = 1

    @property
    def expires_at(self) -> float:
        return self.timestamp + self.ttl


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()
"""Marks an option the caller did not supply."""


@dataclass
class CacheConfig:
    """Per-call options for ``CacheFeature.request_with_cache``."""

    ttl_ms: int = 5 * 60 * 1000
    key: Optional[str] = None
    """Explicit key; wins over the generated key."""

    key_config: Optional[CacheKeyConfig] = None
    """Key generation override for this call."""

    clone: Union[CloneMode, str] = CloneMode.NONE
    fallback: Any = UNSET
    """Returned instead of fetching when the cache cannot be read."""

    def __post_init__(self) -> None:
        validate_cache_config(self)


def validate_ttl(ttl: Any) -> None:
    """Reject anything but a positive integer number of milliseconds."""
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
        raise create_validation_error("TTL must be a positive integer", "INVALID_TTL")


def validate_cache_config(config: CacheConfig) -> None:
    """Validate a cache config in place, normalizing the clone mode."""
    validate_ttl(config.ttl_ms)
    try:
        config.clone = CloneMode(config.clone)
    except ValueError:
        raise create_validation_error(
            "clone must be one of: none, shallow, deep", "INVALID_CLONE"
        ) from None
    if config.key_config is not None:
        validate_cache_key_config(config.key_config)


@dataclass
class CacheStoreStats:
    """Memory store statistics."""

    entries: int
    max_entries: Optional[int]
    evictions: int
    expirations: int
    policy: str


@dataclass
class KeyGeneratorStats:
    """Key generator statistics."""

    keys_generated: int = 0
    memo_hits: int = 0
    memo_misses: int = 0
    memo_size: int = 0
    fallback_keys: int = 0

    @property
    def memo_hit_rate(self) -> float:
        lookups = self.memo_hits + self.memo_misses
        return (self.memo_hits / lookups) * 100 if lookups > 0 else 0


DEFAULT_CACHE_KEY_CONFIG = CacheKeyConfig()

DEFAULT_CACHE_CONFIG = CacheConfig()


def merge_cache_config(config: Optional[CacheConfig] = None, **overrides: Any) -> CacheConfig:
    """Fill a cache config from the defaults; the result is validated."""
    return replace(config or DEFAULT_CACHE_CONFIG, **overrides)
