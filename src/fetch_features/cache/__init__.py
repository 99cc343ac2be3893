"""
Cache engine: key generation, TTL store with eviction policies, and the
get-or-populate cache feature.
"""
from .types import (
    DEFAULT_CACHE_CONFIG,
    DEFAULT_CACHE_KEY_CONFIG,
    UNSET,
    SUPPORTED_HASH_ALGORITHMS,
    CacheConfig,
    CacheItem,
    CacheKeyConfig,
    CacheStoreStats,
    HashAlgorithm,
    KeyGeneratorStats,
    merge_cache_config,
    parse_hash_algorithm,
    validate_cache_config,
    validate_cache_key_config,
    validate_ttl,
)
from .key_generator import (
    CacheKeyGenerator,
    generate_cache_key,
    hash_text,
)
from .policies import (
    CustomEvictionPolicy,
    EvictionPolicy,
    FIFOEvictionPolicy,
    LRUEvictionPolicy,
    TimeBasedEvictionPolicy,
    create_eviction_policy,
)
from .store import CacheStore, MemoryCacheStore
from .feature import CacheFeature

__all__ = [
    # Types
    "UNSET",
    "SUPPORTED_HASH_ALGORITHMS",
    "CacheConfig",
    "CacheItem",
    "CacheKeyConfig",
    "CacheStoreStats",
    "HashAlgorithm",
    "KeyGeneratorStats",
    "DEFAULT_CACHE_CONFIG",
    "DEFAULT_CACHE_KEY_CONFIG",
    "merge_cache_config",
    "parse_hash_algorithm",
    "validate_cache_config",
    "validate_cache_key_config",
    "validate_ttl",
    # Keys
    "CacheKeyGenerator",
    "generate_cache_key",
    "hash_text",
    # Policies
    "CustomEvictionPolicy",
    "EvictionPolicy",
    "FIFOEvictionPolicy",
    "LRUEvictionPolicy",
    "TimeBasedEvictionPolicy",
    "create_eviction_policy",
    # Stores
    "CacheStore",
    "MemoryCacheStore",
    # Feature
    "CacheFeature",
]
