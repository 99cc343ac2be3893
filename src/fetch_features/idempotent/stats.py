"""
Statistics bookkeeping for the idempotent feature.
"""
import dataclasses

from ..utils import update_running_mean
from .types import IdempotentStats


class IdempotentStatsTracker:
    """
    Counters and running means for one feature instance.

    Each running mean keeps its own sample count.
    """

    def __init__(self) -> None:
        self._stats = IdempotentStats()
        self._response_samples = 0
        self._key_samples = 0

    def record_request(self) -> None:
        self._stats.total_requests += 1

    def record_cache_hit(self) -> None:
        self._stats.cache_hits += 1
        self._stats.duplicates_blocked += 1

    def record_pending_reuse(self) -> None:
        self._stats.pending_requests_reused += 1
        self._stats.duplicates_blocked += 1

    def record_network_request(self) -> None:
        self._stats.actual_network_requests += 1

    def record_response_time(self, duration_ms: float) -> None:
        self._response_samples += 1
        self._stats.avg_response_time_ms = update_running_mean(
            self._stats.avg_response_time_ms, duration_ms, self._response_samples
        )

    def record_key_generation_time(self, duration_ms: float) -> None:
        self._key_samples += 1
        self._stats.key_generation_time_ms = update_running_mean(
            self._stats.key_generation_time_ms, duration_ms, self._key_samples
        )

    def snapshot(self) -> IdempotentStats:
        """Copy of the current statistics."""
        return dataclasses.replace(self._stats)

    def reset(self) -> None:
        self._stats = IdempotentStats()
        self._response_samples = 0
        self._key_samples = 0
