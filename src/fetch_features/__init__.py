"""
Transport-agnostic request features: caching with pluggable eviction, retry
with backoff and jitter, and idempotent request coalescing.
"""
from .types import (
    CloneMode,
    HttpMethod,
    RequestDescriptor,
    Requestor,
)
from .errors import (
    RequestError,
    RequestErrorContext,
    RequestErrorType,
    create_http_error,
    create_network_error,
    create_timeout_error,
    create_validation_error,
    wrap_error,
)
from .inflight import PendingRequest, PendingRequestMap
from .cache import (
    CacheConfig,
    CacheFeature,
    CacheItem,
    CacheKeyConfig,
    CacheKeyGenerator,
    CacheStore,
    CustomEvictionPolicy,
    EvictionPolicy,
    FIFOEvictionPolicy,
    HashAlgorithm,
    LRUEvictionPolicy,
    MemoryCacheStore,
    TimeBasedEvictionPolicy,
    create_eviction_policy,
    generate_cache_key,
)
from .retry import (
    DEFAULT_RETRY_CONFIG,
    RetryConfig,
    RetryEvent,
    RetryFeature,
    calculate_retry_delay,
    is_retryable_error,
    merge_retry_config,
)
from .idempotent import (
    DEFAULT_IDEMPOTENT_CONFIG,
    IdempotentConfig,
    IdempotentEvent,
    IdempotentEventType,
    IdempotentFeature,
    IdempotentStats,
    merge_idempotent_config,
)
from .adapters import HttpxRequestor

__all__ = [
    # Types
    "CloneMode",
    "HttpMethod",
    "RequestDescriptor",
    "Requestor",
    # Errors
    "RequestError",
    "RequestErrorContext",
    "RequestErrorType",
    "create_http_error",
    "create_network_error",
    "create_timeout_error",
    "create_validation_error",
    "wrap_error",
    # In-flight registry
    "PendingRequest",
    "PendingRequestMap",
    # Cache
    "CacheConfig",
    "CacheFeature",
    "CacheItem",
    "CacheKeyConfig",
    "CacheKeyGenerator",
    "CacheStore",
    "CustomEvictionPolicy",
    "EvictionPolicy",
    "FIFOEvictionPolicy",
    "HashAlgorithm",
    "LRUEvictionPolicy",
    "MemoryCacheStore",
    "TimeBasedEvictionPolicy",
    "create_eviction_policy",
    "generate_cache_key",
    # Retry
    "DEFAULT_RETRY_CONFIG",
    "RetryConfig",
    "RetryEvent",
    "RetryFeature",
    "calculate_retry_delay",
    "is_retryable_error",
    "merge_retry_config",
    # Idempotent
    "DEFAULT_IDEMPOTENT_CONFIG",
    "IdempotentConfig",
    "IdempotentEvent",
    "IdempotentEventType",
    "IdempotentFeature",
    "IdempotentStats",
    "merge_idempotent_config",
    # Adapters
    "HttpxRequestor",
]

__version__ = "1.0.0"
