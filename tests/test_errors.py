"""
Tests for the RequestError taxonomy.

Coverage includes:
- Type inference from status and original errors
- Factory helpers
- Wrapping of foreign exceptions
- Serialization
"""
import asyncio

from fetch_features import (
    RequestError,
    RequestErrorType,
    create_http_error,
    create_network_error,
    create_timeout_error,
    create_validation_error,
    wrap_error,
)


class TestRequestError:
    """Tests for RequestError."""

    class TestTypeInference:
        """Tests for type inference when no type is given."""

        def test_status_means_http_error(self):
            """Should infer HTTP_ERROR when a status is present."""
            error = RequestError("Not found", status=404)
            assert error.type == RequestErrorType.HTTP_ERROR
            assert error.is_http_error is True

        def test_timeout_original_error(self):
            """Should infer TIMEOUT_ERROR from a timeout exception."""
            error = RequestError("slow", original_error=asyncio.TimeoutError())
            assert error.type == RequestErrorType.TIMEOUT_ERROR

        def test_connection_original_error(self):
            """Should infer NETWORK_ERROR from a connection exception."""
            error = RequestError("down", original_error=ConnectionRefusedError("refused"))
            assert error.type == RequestErrorType.NETWORK_ERROR

        def test_message_mentioning_timeout(self):
            """Should infer TIMEOUT_ERROR from a message mentioning a timeout."""
            error = RequestError("x", original_error=ValueError("Request timed out"))
            assert error.type == RequestErrorType.TIMEOUT_ERROR

        def test_unknown_error(self):
            """Should fall back to UNKNOWN_ERROR."""
            error = RequestError("boom", original_error=ValueError("boom"))
            assert error.type == RequestErrorType.UNKNOWN_ERROR

        def test_explicit_type_wins(self):
            """Should keep an explicitly given type."""
            error = RequestError(
                "bad", type=RequestErrorType.VALIDATION_ERROR, original_error=ConnectionError()
            )
            assert error.type == RequestErrorType.VALIDATION_ERROR

    class TestContext:
        """Tests for the error context."""

        def test_timestamp_is_filled(self):
            """Should stamp the context with a millisecond timestamp."""
            error = RequestError("boom")
            assert error.context.timestamp > 1_000_000_000_000

        def test_suggestion_for_404(self):
            """Should suggest checking the URL for a 404."""
            error = create_http_error(404, "Not found")
            assert "URL" in error.suggestion

    class TestFactories:
        """Tests for factory helpers."""

        def test_create_http_error(self):
            """Should carry status, url and method."""
            error = create_http_error(500, "Server error", url="/users", method="GET")
            assert error.type == RequestErrorType.HTTP_ERROR
            assert error.status == 500
            assert error.context.url == "/users"
            assert error.context.method == "GET"

        def test_create_network_error(self):
            """Should carry a code."""
            error = create_network_error("aborted", code="ABORTED")
            assert error.type == RequestErrorType.NETWORK_ERROR
            assert error.code == "ABORTED"
            assert error.status is None

        def test_create_timeout_error(self):
            """Should record the timeout in the context metadata."""
            error = create_timeout_error("slow", timeout=5.0)
            assert error.type == RequestErrorType.TIMEOUT_ERROR
            assert error.context.metadata == {"timeout": 5.0}

        def test_create_validation_error(self):
            """Should carry a stable code."""
            error = create_validation_error("TTL must be a positive integer", "INVALID_TTL")
            assert error.type == RequestErrorType.VALIDATION_ERROR
            assert error.code == "INVALID_TTL"
            assert str(error) == "TTL must be a positive integer"

    class TestWrapError:
        """Tests for wrap_error."""

        def test_returns_request_error_unchanged(self):
            """Should return the same object for a RequestError."""
            original = create_http_error(500, "Server error")
            assert wrap_error(original) is original

        def test_wraps_foreign_exception(self):
            """Should preserve the original error."""
            cause = ConnectionResetError("connection reset by peer")
            wrapped = wrap_error(cause, url="/users", method="GET", duration_ms=12.5)
            assert isinstance(wrapped, RequestError)
            assert wrapped.original_error is cause
            assert wrapped.type == RequestErrorType.NETWORK_ERROR
            assert wrapped.context.duration_ms == 12.5

        def test_uses_type_name_for_empty_message(self):
            """Should fall back to the exception type name."""
            wrapped = wrap_error(RuntimeError())
            assert wrapped.message == "RuntimeError"

    class TestSerialization:
        """Tests for to_dict and repr."""

        def test_to_dict(self):
            """Should produce a log-friendly mapping."""
            data = create_http_error(503, "Unavailable", url="/users").to_dict()
            assert data["type"] == "HTTP_ERROR"
            assert data["status"] == 503
            assert data["context"]["url"] == "/users"
            assert data["original_error"] is None

        def test_repr(self):
            """Should include type and status."""
            assert "HTTP_ERROR" in repr(create_http_error(500, "x"))
