"""
Tests for RetryFeature.

Test coverage includes:
- Loop testing: zero retries, one retry, exhaustion
- Decision coverage: default predicate, custom predicate, failing predicate
- Backoff computation with and without jitter
- Entry validation (no attempts on invalid config)
- Event emission
"""
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from fetch_features import (
    DEFAULT_RETRY_CONFIG,
    RequestDescriptor,
    RequestError,
    RequestErrorType,
    RetryConfig,
    RetryFeature,
    calculate_retry_delay,
    create_http_error,
    create_network_error,
    create_validation_error,
    is_retryable_error,
    merge_retry_config,
)


DESCRIPTOR = RequestDescriptor(url="https://api.example.com/users")


@pytest.fixture
def sleep_mock():
    """Patch the backoff sleep so tests run instantly."""
    with patch("fetch_features.retry.feature.async_sleep", new_callable=AsyncMock) as mock:
        yield mock


def failing_requestor(*errors):
    """Requestor raising the given errors in order."""
    requestor = AsyncMock()
    requestor.request.side_effect = list(errors)
    return requestor


class TestRetryFeature:
    """Tests for RetryFeature."""

    class TestConstructor:
        """Tests for constructor."""

        def test_default_config(self):
            """Should use the default config."""
            feature = RetryFeature()
            assert feature.config.retries == 3
            assert feature.config.delay_ms == 1000
            assert feature.config.backoff_factor == 1.0
            assert feature.config.jitter == 0.0

        def test_custom_config(self):
            """Should keep a custom config."""
            feature = RetryFeature(config=RetryConfig(retries=5, delay_ms=10))
            assert feature.config.retries == 5

    class TestRequestWithRetry:
        """Tests for retrying the Requestor."""

        @pytest.mark.asyncio
        async def test_success_first_attempt(self, sleep_mock):
            """Should return the result without retrying."""
            requestor = AsyncMock()
            requestor.request.return_value = {"ok": True}
            feature = RetryFeature(requestor)

            result = await feature.request_with_retry(DESCRIPTOR)

            assert result == {"ok": True}
            requestor.request.assert_awaited_once_with(DESCRIPTOR)
            sleep_mock.assert_not_awaited()

        @pytest.mark.asyncio
        async def test_zero_retries_single_attempt(self, sleep_mock):
            """Should make exactly one attempt and raise the original error."""
            error = create_network_error("connection refused")
            requestor = failing_requestor(error)
            feature = RetryFeature(requestor)

            with pytest.raises(RequestError) as exc_info:
                await feature.request_with_retry(DESCRIPTOR, RetryConfig(retries=0))

            assert exc_info.value is error
            assert requestor.request.await_count == 1

        @pytest.mark.parametrize("status", [400, 404])
        @pytest.mark.asyncio
        async def test_client_errors_not_retried(self, sleep_mock, status):
            """Should not retry HTTP 4xx."""
            requestor = failing_requestor(create_http_error(status, "client error"))
            feature = RetryFeature(requestor)

            with pytest.raises(RequestError):
                await feature.request_with_retry(DESCRIPTOR, RetryConfig(retries=3, delay_ms=1))

            assert requestor.request.await_count == 1

        @pytest.mark.asyncio
        async def test_server_error_exhausts_retries(self, sleep_mock):
            """Should make retries + 1 attempts and raise the last error."""
            errors = [create_http_error(500, f"attempt {i}") for i in range(4)]
            requestor = failing_requestor(*errors)
            feature = RetryFeature(requestor)

            with pytest.raises(RequestError) as exc_info:
                await feature.request_with_retry(DESCRIPTOR, RetryConfig(retries=3, delay_ms=1))

            assert requestor.request.await_count == 4
            assert exc_info.value is errors[-1]

        @pytest.mark.asyncio
        async def test_network_error_then_success(self, sleep_mock):
            """Should recover after a transient network error."""
            requestor = AsyncMock()
            requestor.request.side_effect = [ConnectionError("connection reset"), "ok"]
            feature = RetryFeature(requestor)

            result = await feature.request_with_retry(DESCRIPTOR, RetryConfig(delay_ms=1))

            assert result == "ok"
            assert requestor.request.await_count == 2

        @pytest.mark.asyncio
        async def test_unknown_errors_not_retried(self, sleep_mock):
            """Should not retry unknown errors by default."""
            requestor = failing_requestor(ValueError("bad payload"))
            feature = RetryFeature(requestor)

            with pytest.raises(ValueError):
                await feature.request_with_retry(DESCRIPTOR)

            assert requestor.request.await_count == 1

        @pytest.mark.asyncio
        async def test_requires_requestor(self):
            """Should fail fast without a requestor."""
            with pytest.raises(RequestError) as exc_info:
                await RetryFeature().request_with_retry(DESCRIPTOR)
            assert exc_info.value.code == "NO_REQUESTOR"

    class TestBackoff:
        """Tests for delays between attempts."""

        @pytest.mark.asyncio
        async def test_exponential_sequence(self, sleep_mock):
            """Should wait 100, 200, 400 ms for factor 2."""
            fn = AsyncMock(side_effect=ConnectionError("network down"))
            feature = RetryFeature()

            with pytest.raises(ConnectionError):
                await feature.execute(fn, RetryConfig(delay_ms=100, backoff_factor=2, retries=3))

            assert [call.args[0] for call in sleep_mock.await_args_list] == [100, 200, 400]
            assert fn.await_count == 4

        def test_fixed_delay_by_default(self):
            """Should keep the delay constant with factor 1."""
            config = RetryConfig(delay_ms=250)
            assert [calculate_retry_delay(i, config) for i in range(3)] == [250, 250, 250]

        def test_jitter(self):
            """Should add base * jitter * random()."""
            config = RetryConfig(delay_ms=100, jitter=0.5)
            assert calculate_retry_delay(0, config, random_fn=lambda: 0.5) == 125
            assert calculate_retry_delay(0, config, random_fn=lambda: 0.0) == 100

        def test_jitter_bounds(self):
            """Should stay within [base, base * (1 + jitter))."""
            config = RetryConfig(delay_ms=100, backoff_factor=2, jitter=1)
            for attempt in range(3):
                delay = calculate_retry_delay(attempt, config)
                base = 100 * 2 ** attempt
                assert base <= delay < base * 2

        def test_floor(self):
            """Should floor fractional delays."""
            assert calculate_retry_delay(0, RetryConfig(delay_ms=10.7)) == 10

        def test_max_delay_cap(self):
            """Should cap delays at max_delay_ms."""
            config = RetryConfig(delay_ms=100, backoff_factor=10, max_delay_ms=500)
            assert calculate_retry_delay(3, config) == 500

    class TestPredicate:
        """Tests for the retry predicate."""

        @pytest.mark.asyncio
        async def test_custom_predicate_stops_retry(self, sleep_mock):
            """Should honour a predicate returning False."""
            fn = AsyncMock(side_effect=create_http_error(503, "unavailable"))
            predicate = MagicMock(return_value=False)

            with pytest.raises(RequestError):
                await RetryFeature().execute(fn, RetryConfig(should_retry=predicate))

            assert fn.await_count == 1
            predicate.assert_called_once()
            assert predicate.call_args.args[1] == 0

        @pytest.mark.asyncio
        async def test_custom_predicate_enables_retry(self, sleep_mock):
            """Should retry errors the default would not."""
            fn = AsyncMock(side_effect=[ValueError("stale"), "fresh"])
            config = RetryConfig(delay_ms=1, should_retry=lambda error, attempt: True)

            assert await RetryFeature().execute(fn, config) == "fresh"

        @pytest.mark.asyncio
        async def test_predicate_not_called_on_last_attempt(self, sleep_mock):
            """Should not consult the predicate once retries are exhausted."""
            fn = AsyncMock(side_effect=ConnectionError("down"))
            predicate = MagicMock(return_value=True)

            with pytest.raises(ConnectionError):
                await RetryFeature().execute(
                    fn, RetryConfig(retries=2, delay_ms=1, should_retry=predicate)
                )

            assert fn.await_count == 3
            assert [call.args[1] for call in predicate.call_args_list] == [0, 1]

        @pytest.mark.asyncio
        async def test_failing_predicate_propagates_original(self, sleep_mock):
            """Should not retry and raise the original error when the predicate fails."""
            original = create_http_error(500, "boom")
            fn = AsyncMock(side_effect=original)

            def predicate(error, attempt):
                raise RuntimeError("predicate bug")

            with pytest.raises(RequestError) as exc_info:
                await RetryFeature().execute(fn, RetryConfig(should_retry=predicate))

            assert exc_info.value is original
            assert fn.await_count == 1

    class TestValidation:
        """Tests for entry validation."""

        @pytest.mark.parametrize(
            "kwargs,message,code",
            [
                ({"retries": -1}, "Retries must be non-negative", "INVALID_RETRIES"),
                ({"delay_ms": -1}, "Delay must be non-negative", "INVALID_DELAY"),
                ({"backoff_factor": 0}, "Backoff factor must be positive", "INVALID_BACKOFF_FACTOR"),
                ({"jitter": 1.5}, "Jitter must be between 0 and 1", "INVALID_JITTER"),
                ({"jitter": -0.1}, "Jitter must be between 0 and 1", "INVALID_JITTER"),
            ],
        )
        def test_invalid_config(self, kwargs, message, code):
            """Should reject invalid values with a stable code."""
            with pytest.raises(RequestError) as exc_info:
                RetryConfig(**kwargs)
            assert exc_info.value.type == RequestErrorType.VALIDATION_ERROR
            assert exc_info.value.message == message
            assert exc_info.value.code == code

        @pytest.mark.asyncio
        async def test_mutated_config_makes_no_attempt(self):
            """Should validate before the first attempt."""
            config = RetryConfig()
            config.retries = -1
            fn = AsyncMock(return_value="never")

            with pytest.raises(RequestError):
                await RetryFeature().execute(fn, config)

            fn.assert_not_awaited()

        def test_merge_retry_config(self):
            """Should fill defaults and validate overrides."""
            config = merge_retry_config(retries=1)
            assert config.retries == 1
            assert config.delay_ms == DEFAULT_RETRY_CONFIG.delay_ms
            with pytest.raises(RequestError):
                merge_retry_config(config, jitter=2)

    class TestEvents:
        """Tests for event emission."""

        @pytest.mark.asyncio
        async def test_event_sequence(self, sleep_mock):
            """Should emit start, fail, wait, start, success."""
            fn = AsyncMock(side_effect=[ConnectionError("down"), "ok"])
            feature = RetryFeature()
            events = []
            feature.on(events.append)

            await feature.execute(fn, RetryConfig(delay_ms=5))

            assert [event.type for event in events] == [
                "attempt:start",
                "attempt:fail",
                "retry:wait",
                "attempt:start",
                "attempt:success",
            ]
            assert events[1].data["will_retry"] is True
            assert events[2].data["delay_ms"] == 5
            assert events[3].attempt == 1

        @pytest.mark.asyncio
        async def test_listener_errors_ignored(self, sleep_mock):
            """Should keep going when a listener fails."""
            feature = RetryFeature()
            feature.on(MagicMock(side_effect=RuntimeError("listener bug")))

            assert await feature.execute(AsyncMock(return_value=1)) == 1

        @pytest.mark.asyncio
        async def test_unsubscribe(self, sleep_mock):
            """Should stop delivering events after unsubscribe and off."""
            feature = RetryFeature()
            first, second = MagicMock(), MagicMock()
            unsubscribe = feature.on(first)
            feature.on(second)
            unsubscribe()
            feature.off(second)

            await feature.execute(AsyncMock(return_value=1))

            first.assert_not_called()
            second.assert_not_called()


class TestIsRetryableError:
    """Tests for the default predicate."""

    def test_server_status(self):
        """Should retry 5xx."""
        assert is_retryable_error(create_http_error(503, "x")) is True

    def test_client_status(self):
        """Should not retry 4xx."""
        assert is_retryable_error(create_http_error(429, "x")) is False

    def test_network_error(self):
        """Should retry network-level request errors."""
        assert is_retryable_error(create_network_error("down")) is True

    def test_aborted(self):
        """Should not retry aborted requests."""
        assert is_retryable_error(create_network_error("aborted", code="ABORTED")) is False

    def test_validation_error(self):
        """Should not retry validation errors."""
        assert is_retryable_error(create_validation_error("bad", "INVALID_TTL")) is False

    def test_httpx_transport_error(self):
        """Should retry httpx transport errors."""
        assert is_retryable_error(httpx.ConnectTimeout("timed out")) is True

    def test_httpx_status_error(self):
        """Should retry httpx 5xx status errors only."""
        request = httpx.Request("GET", "https://api.example.com/users")
        server = httpx.HTTPStatusError(
            "boom", request=request, response=httpx.Response(502, request=request)
        )
        client = httpx.HTTPStatusError(
            "nope", request=request, response=httpx.Response(404, request=request)
        )
        assert is_retryable_error(server) is True
        assert is_retryable_error(client) is False

    def test_message_patterns(self):
        """Should retry errors whose message names a network condition."""
        assert is_retryable_error(RuntimeError("socket connection refused")) is True
        assert is_retryable_error(RuntimeError("invalid json")) is False

    def test_cause_chain(self):
        """Should follow the cause chain."""
        try:
            try:
                raise ConnectionResetError("peer")
            except ConnectionResetError as e:
                raise RuntimeError("wrapped") from e
        except RuntimeError as error:
            assert is_retryable_error(error) is True
