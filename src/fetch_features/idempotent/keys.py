"""
Idempotent key resolution.
"""
import logging
from typing import Dict, Optional, Tuple

from ..cache.key_generator import CacheKeyGenerator, hash_text
from ..cache.types import CacheKeyConfig, HashAlgorithm
from ..types import RequestDescriptor
from ..utils import safe_stringify
from .types import DEFAULT_INCLUDE_HEADERS, IDEMPOTENT_KEY_PREFIX, IdempotentConfig

logger = logging.getLogger(__name__)


def prefix_key(key: str) -> str:
    """Add the idempotent prefix unless ``key`` already has it."""
    if key.startswith(IDEMPOTENT_KEY_PREFIX):
        return key
    return f"{IDEMPOTENT_KEY_PREFIX}{key}"


def build_key_config(
    config: IdempotentConfig, base: Optional[CacheKeyConfig] = None
) -> CacheKeyConfig:
    """
    Translate idempotent options into a key generation config.

    Header selection falls back from the call, to a non-empty
    ``base.include_headers``, to ``DEFAULT_INCLUDE_HEADERS``. Key length and
    memoization come from ``base``.
    """
    base = base or CacheKeyConfig()
    if config.include_headers is not None:
        include_headers = list(config.include_headers)
    elif base.include_headers:
        include_headers = list(base.include_headers)
    else:
        include_headers = list(DEFAULT_INCLUDE_HEADERS)
    return CacheKeyConfig(
        include_headers=include_headers,
        include_all_headers=config.include_all_headers or base.include_all_headers,
        max_key_length=base.max_key_length,
        enable_hash_cache=base.enable_hash_cache,
        hash_algorithm=config.hash_algorithm,
    )


def fallback_key(
    descriptor: RequestDescriptor,
    algorithm: HashAlgorithm = HashAlgorithm.FNV1A,
) -> str:
    """Key from method, URL and a safe serialisation of the body."""
    raw = f"{descriptor.method}:{descriptor.url}:{safe_stringify(descriptor.data)}"
    return f"{IDEMPOTENT_KEY_PREFIX}fallback:{hash_text(raw, algorithm)}"


class IdempotentKeyResolver:
    """Resolves idempotent keys, keeping one key generator per key config."""

    def __init__(self, key_config: Optional[CacheKeyConfig] = None) -> None:
        self._base = key_config
        self._generators: Dict[Tuple, CacheKeyGenerator] = {}

    def resolve(self, descriptor: RequestDescriptor, config: IdempotentConfig) -> str:
        if config.key:
            return prefix_key(str(config.key))

        key_config = build_key_config(config, self._base)
        try:
            generator = self._generator_for(key_config)
            return prefix_key(generator.generate_key(descriptor))
        except Exception as e:
            key = fallback_key(descriptor, config.hash_algorithm)
            logger.warning(f"Idempotent key generation failed, using fallback key {key}: {e}")
            return key

    def _generator_for(self, key_config: CacheKeyConfig) -> CacheKeyGenerator:
        signature = (
            tuple(sorted(name.lower() for name in key_config.include_headers)),
            key_config.include_all_headers,
            key_config.max_key_length,
            key_config.enable_hash_cache,
            HashAlgorithm(key_config.hash_algorithm).value,
        )
        generator: Optional[CacheKeyGenerator] = self._generators.get(signature)
        if generator is None:
            generator = CacheKeyGenerator(key_config)
            self._generators[signature] = generator
        return generator

    def clear(self) -> None:
        self._generators.clear()
