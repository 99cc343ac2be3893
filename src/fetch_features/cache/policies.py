"""
Eviction policies for the memory cache store.

A policy chooses the victim when the store is over capacity, may update
bookkeeping on reads, and may add an invalidation rule on top of the TTL
check.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, Optional

from ..errors import create_validation_error
from .types import CacheItem


class EvictionPolicy(ABC):
    """Abstract eviction policy."""

    name: str = "abstract"

    @abstractmethod
    def select_victim(self, items: Mapping[str, CacheItem]) -> Optional[str]:
        """Return the key to evict, or None when ``items`` is empty."""
        ...

    def on_access(self, item: CacheItem, now: float) -> None:
        """Record a read of ``item``."""
        item.access_time = now
        item.access_count += 1

    def should_invalidate(self, item: CacheItem, now: float) -> bool:
        """Extra invalidation rule applied after the TTL check."""
        return False


class LRUEvictionPolicy(EvictionPolicy):
    """Evict the least recently accessed item."""

    name = "lru"

    def select_victim(self, items: Mapping[str, CacheItem]) -> Optional[str]:
        if not items:
            return None
        return min(items.values(), key=lambda item: item.access_time).key


class FIFOEvictionPolicy(EvictionPolicy):
    """Evict the earliest inserted item, whatever its access pattern."""

    name = "fifo"

    def select_victim(self, items: Mapping[str, CacheItem]) -> Optional[str]:
        if not items:
            return None
        return min(items.values(), key=lambda item: item.timestamp).key


class TimeBasedEvictionPolicy(EvictionPolicy):
    """Evict the item closest to expiry."""

    name = "time_based"

    def select_victim(self, items: Mapping[str, CacheItem]) -> Optional[str]:
        if not items:
            return None
        return min(items.values(), key=lambda item: item.expires_at).key


class CustomEvictionPolicy(EvictionPolicy):
    """
    Policy built from caller-supplied callables.

    The victim is the item with the smallest ``sort_key``.

    Example:
        # Evict the least used item first
        policy = CustomEvictionPolicy(sort_key=lambda item: item.access_count)
    """

    def __init__(
        self,
        sort_key: Callable[[CacheItem], Any],
        on_access: Optional[Callable[[CacheItem, float], None]] = None,
        should_invalidate: Optional[Callable[[CacheItem, float], bool]] = None,
        name: str = "custom",
    ) -> None:
        self._sort_key = sort_key
        self._on_access = on_access
        self._should_invalidate = should_invalidate
        self.name = name

    def select_victim(self, items: Mapping[str, CacheItem]) -> Optional[str]:
        if not items:
            return None
        return min(items.values(), key=self._sort_key).key

    def on_access(self, item: CacheItem, now: float) -> None:
        if self._on_access is not None:
            self._on_access(item, now)
        else:
            super().on_access(item, now)

    def should_invalidate(self, item: CacheItem, now: float) -> bool:
        if self._should_invalidate is None:
            return False
        return bool(self._should_invalidate(item, now))


_POLICIES = {
    "lru": LRUEvictionPolicy,
    "fifo": FIFOEvictionPolicy,
    "time_based": TimeBasedEvictionPolicy,
}


def create_eviction_policy(name: str = "lru") -> EvictionPolicy:
    """Create a built-in eviction policy by name."""
    policy_class = _POLICIES.get(name)
    if policy_class is None:
        raise create_validation_error(
            f"Unknown eviction policy: {name} (expected one of: {', '.join(_POLICIES)})",
            "INVALID_EVICTION_POLICY",
        )
    return policy_class()
