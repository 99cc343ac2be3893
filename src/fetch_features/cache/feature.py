"""
Get-or-populate caching around a Requestor or any async producer.
"""
import asyncio
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, Optional

from ..errors import create_validation_error
from ..inflight import PendingRequest, PendingRequestMap, shared_descriptor
from ..types import RequestDescriptor, Requestor
from ..utils import clone_data, now_ms
from .key_generator import CacheKeyGenerator
from .policies import EvictionPolicy
from .store import CacheStore, MemoryCacheStore
from .types import (
    UNSET,
    CacheConfig,
    CacheItem,
    CacheKeyConfig,
    validate_cache_config,
)

logger = logging.getLogger(__name__)


class CacheFeature:
    """
    Cache feature.

    Concurrent misses for the same key share one producer call.

    Example:
        feature = CacheFeature(HttpxRequestor(base_url="https://api.example.com"))
        users = await feature.request_with_cache(
            RequestDescriptor(url="/users"),
            CacheConfig(ttl_ms=60_000, clone="deep"),
        )
    """

    def __init__(
        self,
        requestor: Optional[Requestor] = None,
        max_entries: Optional[int] = 1000,
        key_config: Optional[CacheKeyConfig] = None,
        policy: Optional[EvictionPolicy] = None,
        store: Optional[CacheStore] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._requestor = requestor
        self._clock = clock or now_ms
        self._store = store or MemoryCacheStore(
            max_entries=max_entries, policy=policy, clock=self._clock
        )
        self._key_generator = CacheKeyGenerator(key_config)
        self._pending = PendingRequestMap()

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def key_generator(self) -> CacheKeyGenerator:
        return self._key_generator

    def generate_key(
        self, descriptor: RequestDescriptor, config: Optional[CacheConfig] = None
    ) -> str:
        """Resolve the cache key: an explicit key wins over the generated one."""
        config = config or CacheConfig()
        generator = self._key_generator
        if config.key_config is not None:
            generator = CacheKeyGenerator(config.key_config)
        return generator.generate_key(descriptor, custom_key=config.key)

    async def request_with_cache(
        self,
        descriptor: RequestDescriptor,
        config: Optional[CacheConfig] = None,
        producer: Optional[Callable[[], Awaitable[Any]]] = None,
    ) -> Any:
        """
        Return the cached value for ``descriptor`` or produce and cache it.

        ``producer`` defaults to sending ``descriptor`` through the Requestor.
        Failures are never cached.
        """
        config = config or CacheConfig()
        validate_cache_config(config)
        if producer is None and self._requestor is None:
            raise create_validation_error(
                "A requestor or producer is required", "NO_REQUESTOR"
            )

        key = self.generate_key(descriptor, config)

        try:
            item = self._store.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
            if config.fallback is not UNSET:
                return config.fallback
            item = None

        if item is not None:
            logger.debug(f"Cache hit: {key}")
            return clone_data(item.data, config.clone)

        pending = self._pending.attach(key)
        if pending is not None:
            logger.debug(f"Joining in-flight request: {key} ({pending.subscribers} subscribers)")
            data = await self._pending.wait(key, pending, descriptor)
            return clone_data(data, config.clone)

        logger.debug(f"Cache miss: {key}")
        shared, signal = shared_descriptor(descriptor)
        fetch = producer or partial(self._requestor.request, shared)
        task = asyncio.ensure_future(self._populate(key, fetch, config.ttl_ms))
        entry = PendingRequest(
            future=task, started_at=self._clock(), descriptor=descriptor, signal=signal
        )
        self._pending.register(key, entry)
        task.add_done_callback(partial(self._settle, key, entry))

        data = await self._pending.wait(key, entry, descriptor)
        return clone_data(data, config.clone)

    async def _populate(
        self, key: str, fetch: Callable[[], Awaitable[Any]], ttl_ms: int
    ) -> Any:
        data = await fetch()
        self.set_cache_item(key, data, ttl_ms)
        return data

    def _settle(self, key: str, entry: PendingRequest, task: "asyncio.Future[Any]") -> None:
        self._pending.delete(key, entry)
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            task.exception()

    def get_cache_item(self, key: str) -> Optional[CacheItem]:
        """Read a valid item, or None on a miss or a store failure."""
        try:
            return self._store.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def set_cache_item(self, key: str, data: Any, ttl_ms: int) -> bool:
        """Write an item. Returns False when the store failed."""
        try:
            self._store.set(key, data, ttl_ms)
            return True
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False

    def remove_cache_item(self, key: str) -> bool:
        try:
            return self._store.remove(key)
        except Exception as e:
            logger.warning(f"Cache remove failed for {key}: {e}")
            return False

    def is_cache_item_valid(self, item: CacheItem) -> bool:
        return self._store.is_valid(item)

    def is_pending(self, key: str) -> bool:
        """Check if a producer call is in flight for ``key``."""
        return self._pending.has(key)

    def clear_cache(self, key: Optional[str] = None) -> None:
        """Clear one entry or the whole cache. Never raises."""
        try:
            self._store.clear(key)
            logger.info(f"Cache cleared: {key if key is not None else 'all entries'}")
        except Exception as e:
            logger.warning(f"Cache clear failed: {e}")

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "store": self._store.get_stats(),
            "pending": self._pending.size(),
            "key_generator": self._key_generator.get_stats(),
        }

    def destroy(self) -> None:
        """Drop cached and in-flight state. Never raises."""
        try:
            self._pending.clear()
            self._store.close()
            self._key_generator.clear_cache()
            logger.info("Cache feature destroyed")
        except Exception as e:
            logger.warning(f"Cache feature destroy failed: {e}")
