"""
Retry feature implementation
"""
import logging
import random
from typing import Awaitable, Callable, List, Optional, TypeVar

from ..errors import create_validation_error
from ..types import RequestDescriptor, Requestor
from ..utils import perf_ms
from .config import (
    DEFAULT_RETRY_CONFIG,
    async_sleep,
    calculate_retry_delay,
    is_retryable_error,
)
from .types import (
    RetryConfig,
    RetryEvent,
    RetryEventListener,
    validate_retry_config,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryFeature:
    """
    Retry Feature

    Provides retry logic with:
    - A bounded number of retries
    - Backoff with optional jitter
    - A retry-eligibility predicate
    - Event emission for observability

    Example:
        feature = RetryFeature(requestor)
        users = await feature.request_with_retry(
            RequestDescriptor(url="https://api.example.com/users"),
            RetryConfig(retries=3, delay_ms=100, backoff_factor=2),
        )
    """

    def __init__(
        self,
        requestor: Optional[Requestor] = None,
        config: Optional[RetryConfig] = None,
        random_fn: Callable[[], float] = random.random,
    ) -> None:
        self._requestor = requestor
        self._config = config or DEFAULT_RETRY_CONFIG
        self._random = random_fn
        self._listeners: List[RetryEventListener] = []

    @property
    def config(self) -> RetryConfig:
        """Get the default configuration."""
        return self._config

    def _emit(self, event: RetryEvent) -> None:
        """Emit an event to all listeners."""
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Retry event listener failed on {event.type}: {e}")

    async def request_with_retry(
        self,
        descriptor: RequestDescriptor,
        config: Optional[RetryConfig] = None,
    ) -> object:
        """
        Send ``descriptor`` through the Requestor, retrying failed attempts.

        Args:
            descriptor: Request to send
            config: Retry configuration for this call

        Returns:
            The Requestor's result
        """
        if self._requestor is None:
            raise create_validation_error("A requestor is required", "NO_REQUESTOR")
        requestor = self._requestor

        async def attempt() -> object:
            return await requestor.request(descriptor)

        return await self.execute(attempt, config, label=f"{descriptor.method} {descriptor.url}")

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        config: Optional[RetryConfig] = None,
        label: str = "operation",
    ) -> T:
        """
        Execute a function with retry logic.

        Args:
            fn: Zero-argument async function to execute
            config: Retry configuration; defaults to the feature's config
            label: Name used in log messages

        Returns:
            The function's result

        Example:
            result = await RetryFeature().execute(fetch_data, RetryConfig(retries=2))
        """
        config = config or self._config
        validate_retry_config(config)

        attempt = 0
        while True:
            self._emit(RetryEvent(type="attempt:start", attempt=attempt))
            logger.debug(f"{label}: attempt {attempt + 1}/{config.retries + 1}")
            attempt_start = perf_ms()

            try:
                result = await fn()
            except Exception as error:
                will_retry = self._should_retry_attempt(error, attempt, config)

                self._emit(RetryEvent(
                    type="attempt:fail",
                    attempt=attempt,
                    data={
                        "error": str(error),
                        "will_retry": will_retry,
                        "duration_ms": perf_ms() - attempt_start,
                    },
                ))

                if not will_retry:
                    if attempt > 0:
                        logger.error(f"{label}: failed after {attempt + 1} attempts: {error}")
                    raise

                delay = calculate_retry_delay(attempt, config, self._random)

                self._emit(RetryEvent(
                    type="retry:wait",
                    attempt=attempt,
                    data={"delay_ms": delay},
                ))
                logger.warning(f"{label}: attempt {attempt + 1} failed ({error}), retrying in {delay}ms")

                await async_sleep(delay)
                attempt += 1
                continue

            self._emit(RetryEvent(
                type="attempt:success",
                attempt=attempt,
                data={"duration_ms": perf_ms() - attempt_start},
            ))
            return result

    def _should_retry_attempt(
        self,
        error: BaseException,
        attempt: int,
        config: RetryConfig,
    ) -> bool:
        """Determine if we should retry after a failure."""
        # Retries exhausted; the predicate is not consulted
        if attempt >= config.retries:
            return False

        if config.should_retry is None:
            return is_retryable_error(error)

        try:
            return bool(config.should_retry(error, attempt))
        except Exception as predicate_error:
            logger.warning(f"Retry predicate failed, not retrying: {predicate_error}")
            return False

    def on(self, listener: RetryEventListener) -> Callable[[], None]:
        """
        Add an event listener.

        Args:
            listener: Event listener function

        Returns:
            Function to remove the listener
        """
        self._listeners.append(listener)
        return lambda: self.off(listener)

    def off(self, listener: RetryEventListener) -> None:
        """Remove an event listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)
