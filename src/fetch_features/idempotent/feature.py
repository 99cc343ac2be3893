"""
Idempotent request coalescing.

At most one network call per idempotent key is in flight at a time, and a
successful result is served from cache for the rest of the TTL window.
"""
import asyncio
import dataclasses
import logging
from functools import partial
from typing import Any, Callable, Optional, Set, Union

from ..cache.feature import CacheFeature
from ..cache.policies import EvictionPolicy
from ..cache.store import CacheStore
from ..cache.types import CacheKeyConfig
from ..errors import create_validation_error, wrap_error
from ..inflight import PendingRequest, PendingRequestMap, shared_descriptor
from ..types import RequestDescriptor, Requestor
from ..utils import clone_data, now_ms, perf_ms
from .keys import IdempotentKeyResolver, prefix_key
from .stats import IdempotentStatsTracker
from .types import (
    MAX_IDEMPOTENT_ENTRIES,
    IdempotentConfig,
    IdempotentEvent,
    IdempotentEventListener,
    IdempotentEventType,
    IdempotentStats,
    validate_idempotent_config,
)

logger = logging.getLogger(__name__)

RequestTarget = Union[str, RequestDescriptor]


class IdempotentFeature:
    """
    Idempotent feature - request deduplication for concurrent identical calls.

    The cache lookup, the in-flight lookup and the in-flight registration run
    in one synchronous span, so two callers can never both miss and both
    reach the network.

    Example:
        feature = IdempotentFeature(HttpxRequestor(base_url="https://api.example.com"))

        # These 50 concurrent calls result in only 1 network request
        results = await asyncio.gather(
            *[feature.get_idempotent("/users") for _ in range(50)]
        )

        stats = feature.get_idempotent_stats()
        print(stats.actual_network_requests)  # 1
        print(stats.duplicates_blocked)  # 49
    """

    def __init__(
        self,
        requestor: Optional[Requestor] = None,
        max_entries: Optional[int] = MAX_IDEMPOTENT_ENTRIES,
        policy: Optional[EvictionPolicy] = None,
        store: Optional[CacheStore] = None,
        clock: Optional[Callable[[], float]] = None,
        key_config: Optional[CacheKeyConfig] = None,
    ) -> None:
        self._requestor = requestor
        self._clock = clock or now_ms
        self._cache = CacheFeature(
            requestor,
            max_entries=max_entries,
            policy=policy,
            store=store,
            clock=self._clock,
        )
        self._pending = PendingRequestMap()
        self._keys = IdempotentKeyResolver(key_config)
        self._stats = IdempotentStatsTracker()
        self._listeners: Set[IdempotentEventListener] = set()

    @property
    def cache(self) -> CacheFeature:
        """Response cache backing this feature."""
        return self._cache

    async def request_idempotent(
        self,
        descriptor: RequestDescriptor,
        config: Optional[IdempotentConfig] = None,
    ) -> Any:
        """
        Send ``descriptor`` at most once per idempotent key and TTL window.

        Duplicate calls receive the cached value, or join the in-flight call
        and observe its outcome, value or error.
        """
        config = config or IdempotentConfig()
        validate_idempotent_config(config)
        if self._requestor is None:
            raise create_validation_error("A requestor is required", "NO_REQUESTOR")

        start = perf_ms()
        key = self._keys.resolve(descriptor, config)
        self._stats.record_key_generation_time(perf_ms() - start)
        self._stats.record_request()

        try:
            item = self._cache.get_cache_item(key)
            if item is not None:
                self._stats.record_cache_hit()
                logger.debug(f"Idempotent cache hit: {key}")
                self._emit(IdempotentEventType.HIT, key)
                self._notify_duplicate(config, descriptor, key)
                return clone_data(item.data, config.clone)

            pending = self._pending.attach(key)
            if pending is not None:
                self._stats.record_pending_reuse()
                logger.debug(
                    f"Joining in-flight request: {key} ({pending.subscribers} subscribers)"
                )
                self._emit(
                    IdempotentEventType.JOIN, key, {"subscribers": pending.subscribers}
                )
                self._notify_duplicate(config, descriptor, key)
                data = await self._pending.wait(key, pending, descriptor)
                return clone_data(data, config.clone)

            shared, signal = shared_descriptor(descriptor)
            task = asyncio.ensure_future(self._execute(key, shared, config))
            entry = PendingRequest(
                future=task, started_at=self._clock(), descriptor=descriptor, signal=signal
            )
            self._pending.register(key, entry)
            task.add_done_callback(partial(self._settle, key, entry))
            self._emit(IdempotentEventType.LEAD, key)

            data = await self._pending.wait(key, entry, descriptor)
            return clone_data(data, config.clone)
        finally:
            self._stats.record_response_time(perf_ms() - start)

    async def _execute(
        self,
        key: str,
        descriptor: RequestDescriptor,
        config: IdempotentConfig,
    ) -> Any:
        """Run the one network call for ``key`` and cache its result."""
        started_at = perf_ms()
        try:
            data = await self._requestor.request(descriptor)
        except Exception as error:
            wrapped = wrap_error(
                error,
                url=descriptor.url,
                method=descriptor.method,
                duration_ms=perf_ms() - started_at,
                tag=descriptor.tag,
            )
            logger.debug(f"Idempotent request failed: {key}: {wrapped.message}")
            self._emit(IdempotentEventType.ERROR, key, {"error": wrapped.message})
            if wrapped is error:
                raise
            raise wrapped from error

        self._cache.set_cache_item(key, data, config.ttl_ms)
        self._stats.record_network_request()

        current = self._pending.get(key)
        self._emit(
            IdempotentEventType.COMPLETE,
            key,
            {
                "subscribers": current.subscribers if current else 1,
                "duration_ms": perf_ms() - started_at,
            },
        )
        return data

    def _settle(self, key: str, entry: PendingRequest, task: "asyncio.Future[Any]") -> None:
        self._pending.delete(key, entry)
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves.
            task.exception()

    def _notify_duplicate(
        self, config: IdempotentConfig, descriptor: RequestDescriptor, key: str
    ) -> None:
        if config.on_duplicate is None:
            return
        try:
            config.on_duplicate(descriptor, key)
        except Exception as e:
            logger.warning(f"on_duplicate callback failed for {key}: {e}")

    async def get_idempotent(
        self, target: RequestTarget, config: Optional[IdempotentConfig] = None, **fields: Any
    ) -> Any:
        return await self.request_idempotent(self._describe(target, "GET", fields), config)

    async def post_idempotent(
        self, target: RequestTarget, config: Optional[IdempotentConfig] = None, **fields: Any
    ) -> Any:
        return await self.request_idempotent(self._describe(target, "POST", fields), config)

    async def put_idempotent(
        self, target: RequestTarget, config: Optional[IdempotentConfig] = None, **fields: Any
    ) -> Any:
        return await self.request_idempotent(self._describe(target, "PUT", fields), config)

    async def patch_idempotent(
        self, target: RequestTarget, config: Optional[IdempotentConfig] = None, **fields: Any
    ) -> Any:
        return await self.request_idempotent(self._describe(target, "PATCH", fields), config)

    async def delete_idempotent(
        self, target: RequestTarget, config: Optional[IdempotentConfig] = None, **fields: Any
    ) -> Any:
        return await self.request_idempotent(self._describe(target, "DELETE", fields), config)

    @staticmethod
    def _describe(target: RequestTarget, method: str, fields: dict) -> RequestDescriptor:
        if "method" in fields:
            raise create_validation_error(
                f"method is fixed to {method} by this helper; use request_idempotent",
                "INVALID_METHOD",
            )
        if isinstance(target, RequestDescriptor):
            return dataclasses.replace(target, method=method, **fields)
        return RequestDescriptor(url=target, method=method, **fields)

    def is_pending(self, key: str) -> bool:
        """Check if a network call is in flight for ``key``."""
        return self._pending.has(prefix_key(key))

    def clear_idempotent_cache(self, key: Optional[str] = None) -> None:
        """
        Clear one cached response, or all of them. Never raises.

        In-flight calls are not affected.
        """
        try:
            target = prefix_key(key) if key is not None else None
            self._cache.clear_cache(target)
            self._emit(IdempotentEventType.CLEAR, target)
        except Exception as e:
            logger.warning(f"Failed to clear idempotent cache: {e}")

    def get_idempotent_stats(self) -> IdempotentStats:
        """Get a statistics snapshot; ``duplicate_rate`` is derived."""
        return self._stats.snapshot()

    def reset_stats(self) -> None:
        """Zero all counters and means."""
        self._stats.reset()

    def on(self, listener: IdempotentEventListener) -> Callable[[], None]:
        """Add event listener."""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def off(self, listener: IdempotentEventListener) -> None:
        """Remove event listener."""
        self._listeners.discard(listener)

    def _emit(
        self,
        event_type: IdempotentEventType,
        key: Optional[str],
        metadata: Optional[dict] = None,
    ) -> None:
        """Emit an event to all listeners."""
        if not self._listeners:
            return
        event = IdempotentEvent(
            type=event_type, key=key, timestamp=self._clock(), metadata=metadata
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Idempotent event listener failed on {event_type.value}: {e}")

    def destroy(self) -> None:
        """
        Release all state. Never raises.

        Pending entries are abandoned; callers already attached still receive
        their outcome.
        """
        try:
            self._pending.clear()
            self._cache.destroy()
            self._keys.clear()
            self._listeners.clear()
            self._stats.reset()
            logger.info("Idempotent feature destroyed")
        except Exception as e:
            logger.warning(f"Idempotent feature destroy failed: {e}")
