"""
Idempotent feature: coalesces concurrent identical requests and serves
repeats from cache within a TTL window.
"""
from .types import (
    DEFAULT_IDEMPOTENT_CONFIG,
    DEFAULT_IDEMPOTENT_TTL_MS,
    DEFAULT_INCLUDE_HEADERS,
    IDEMPOTENT_KEY_PREFIX,
    MAX_IDEMPOTENT_ENTRIES,
    IdempotentConfig,
    IdempotentEvent,
    IdempotentEventListener,
    IdempotentEventType,
    IdempotentStats,
    OnDuplicate,
    merge_idempotent_config,
    validate_idempotent_config,
)
from .keys import IdempotentKeyResolver, build_key_config, fallback_key, prefix_key
from .stats import IdempotentStatsTracker
from .feature import IdempotentFeature

__all__ = [
    # Constants
    "DEFAULT_IDEMPOTENT_CONFIG",
    "DEFAULT_IDEMPOTENT_TTL_MS",
    "DEFAULT_INCLUDE_HEADERS",
    "IDEMPOTENT_KEY_PREFIX",
    "MAX_IDEMPOTENT_ENTRIES",
    # Types
    "IdempotentConfig",
    "IdempotentEvent",
    "IdempotentEventListener",
    "IdempotentEventType",
    "IdempotentStats",
    "OnDuplicate",
    "merge_idempotent_config",
    "validate_idempotent_config",
    # Keys
    "IdempotentKeyResolver",
    "build_key_config",
    "fallback_key",
    "prefix_key",
    # Stats
    "IdempotentStatsTracker",
    # Feature
    "IdempotentFeature",
]
