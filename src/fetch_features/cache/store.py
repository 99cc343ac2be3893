"""
TTL-aware cache stores.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from ..errors import create_validation_error
from ..utils import now_ms
from .policies import EvictionPolicy, LRUEvictionPolicy
from .types import CacheItem, CacheStoreStats

logger = logging.getLogger(__name__)


class CacheStore(ABC):
    """
    Abstract cache store.

    Methods are synchronous so lookups and registration can run without a
    suspension point in between.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[CacheItem]:
        """Get a valid item by key; expired items are removed and reported as a miss."""
        ...

    @abstractmethod
    def set(self, key: str, data: Any, ttl: float) -> None:
        """Store ``data`` under ``key`` for ``ttl`` milliseconds."""
        ...

    @abstractmethod
    def remove(self, key: str) -> bool:
        """Remove an item. Returns True if it existed."""
        ...

    @abstractmethod
    def is_valid(self, item: CacheItem) -> bool:
        """Check whether ``item`` is still within its TTL."""
        ...

    @abstractmethod
    def clear(self, key: Optional[str] = None) -> None:
        """Remove one item, or every item when ``key`` is None."""
        ...

    def get_stats(self) -> Optional[CacheStoreStats]:
        """Store statistics, when the store keeps any."""
        return None

    def close(self) -> None:
        """Release resources."""
        self.clear()


class MemoryCacheStore(CacheStore):
    """
    In-memory cache store with pluggable eviction.

    Expired items are removed lazily on read. Eviction runs synchronously
    when inserting a new key would exceed ``max_entries``.
    """

    def __init__(
        self,
        max_entries: Optional[int] = 1000,
        policy: Optional[EvictionPolicy] = None,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        if max_entries is not None and (
            isinstance(max_entries, bool) or not isinstance(max_entries, int) or max_entries <= 0
        ):
            raise create_validation_error(
                "maxEntries must be a positive integer", "INVALID_MAX_ENTRIES"
            )
        self._items: Dict[str, CacheItem] = {}
        self._max_entries = max_entries
        self._policy = policy or LRUEvictionPolicy()
        self._clock = clock
        self._evictions = 0
        self._expirations = 0

    @property
    def policy(self) -> EvictionPolicy:
        return self._policy

    def is_valid(self, item: CacheItem) -> bool:
        return self._clock() - item.timestamp < item.ttl

    def _is_usable(self, item: CacheItem, now: float) -> bool:
        return now - item.timestamp < item.ttl and not self._policy.should_invalidate(item, now)

    def get(self, key: str) -> Optional[CacheItem]:
        item = self._items.get(key)
        if item is None:
            return None

        now = self._clock()
        if not self._is_usable(item, now):
            del self._items[key]
            self._expirations += 1
            logger.debug(f"Cache entry expired: {key}")
            return None

        self._policy.on_access(item, now)
        return item

    def set(self, key: str, data: Any, ttl: float) -> None:
        now = self._clock()
        if key not in self._items:
            self._evict_if_needed()

        self._items[key] = CacheItem(
            key=key,
            data=data,
            timestamp=now,
            ttl=ttl,
            access_time=now,
        )

    def _evict_if_needed(self) -> None:
        if self._max_entries is None:
            return

        while len(self._items) >= self._max_entries:
            victim = self._policy.select_victim(self._items)
            if victim is None:
                break
            del self._items[victim]
            self._evictions += 1
            logger.debug(f"Evicted cache entry ({self._policy.name}): {victim}")

    def remove(self, key: str) -> bool:
        return self._items.pop(key, None) is not None

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._items.clear()
        else:
            self._items.pop(key, None)

    def has(self, key: str) -> bool:
        """Check if a valid item exists, without touching access bookkeeping."""
        item = self._items.get(key)
        if item is None:
            return False
        if not self._is_usable(item, self._clock()):
            del self._items[key]
            self._expirations += 1
            return False
        return True

    def keys(self) -> List[str]:
        """Get all keys, expired ones included until they are read."""
        return list(self._items.keys())

    def size(self) -> int:
        return len(self._items)

    def get_stats(self) -> CacheStoreStats:
        """Get store statistics."""
        return CacheStoreStats(
            entries=len(self._items),
            max_entries=self._max_entries,
            evictions=self._evictions,
            expirations=self._expirations,
            policy=self._policy.name,
        )
