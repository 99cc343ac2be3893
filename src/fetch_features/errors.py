"""
Request error taxonomy.

A single ``RequestError`` class tagged by ``RequestErrorType``. Callers
branch on ``error.type`` (and ``error.status``), never on subclasses.
"""
import asyncio
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional


class RequestErrorType(str, Enum):
    """Error kinds surfaced by the feature layer."""

    NETWORK_ERROR = "NETWORK_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass
class RequestErrorContext:
    """Where and when an error happened."""

    url: Optional[str] = None
    method: Optional[str] = None
    timestamp: float = 0
    """Unix timestamp in milliseconds."""

    duration_ms: Optional[float] = None
    tag: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


_SUGGESTIONS = {
    RequestErrorType.NETWORK_ERROR: "Check the network connection and that the server is reachable",
    RequestErrorType.TIMEOUT_ERROR: "The request timed out; raise the timeout or check network conditions",
    RequestErrorType.VALIDATION_ERROR: "Check the request configuration values",
    RequestErrorType.UNKNOWN_ERROR: "Check the network connection and request configuration",
}


def _infer_error_type(
    status: Optional[int],
    is_http_error: bool,
    original_error: Optional[BaseException],
) -> RequestErrorType:
    if status:
        return RequestErrorType.HTTP_ERROR

    if isinstance(original_error, (TimeoutError, asyncio.TimeoutError)):
        return RequestErrorType.TIMEOUT_ERROR
    if isinstance(original_error, (ConnectionError, OSError)):
        return RequestErrorType.NETWORK_ERROR

    if isinstance(original_error, Exception):
        message = str(original_error).lower()
        if "timeout" in message or "timed out" in message:
            return RequestErrorType.TIMEOUT_ERROR
        if "network" in message or "fetch" in message or "connection" in message:
            return RequestErrorType.NETWORK_ERROR

    if is_http_error:
        return RequestErrorType.HTTP_ERROR
    return RequestErrorType.UNKNOWN_ERROR


class RequestError(Exception):
    """
    Error raised for every failure the feature layer surfaces.

    Example:
        try:
            await feature.request_idempotent(descriptor)
        except RequestError as error:
            if error.type == RequestErrorType.HTTP_ERROR and error.status == 404:
                ...
    """

    def __init__(
        self,
        message: str,
        *,
        type: Optional[RequestErrorType] = None,
        status: Optional[int] = None,
        code: Optional[str] = None,
        is_http_error: bool = False,
        context: Optional[RequestErrorContext] = None,
        original_error: Optional[BaseException] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.is_http_error = is_http_error or bool(status)
        self.original_error = original_error
        self.type = type or _infer_error_type(status, is_http_error, original_error)

        self.context = context or RequestErrorContext()
        if not self.context.timestamp:
            self.context.timestamp = time.time() * 1000

        self.suggestion = suggestion or self._generate_suggestion()

    def _generate_suggestion(self) -> str:
        if self.type == RequestErrorType.HTTP_ERROR:
            if self.status == 404:
                return "Check that the request URL is correct"
            if self.status == 401:
                return "Authentication failed; check the token or login state"
            if self.status == 403:
                return "Permission denied; check the user's permissions"
            if self.status and self.status >= 500:
                return "Server error; retry later or contact the service owner"
            return "Check the request parameters and server state"
        return _SUGGESTIONS[self.type]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for structured logging."""
        return {
            "name": "RequestError",
            "message": self.message,
            "type": self.type.value,
            "status": self.status,
            "code": self.code,
            "is_http_error": self.is_http_error,
            "context": asdict(self.context),
            "suggestion": self.suggestion,
            "original_error": repr(self.original_error) if self.original_error else None,
        }

    def __repr__(self) -> str:
        return f"RequestError(type={self.type.value}, status={self.status}, message={self.message!r})"


def _context(url: Optional[str], method: Optional[str], **extra: Any) -> RequestErrorContext:
    return RequestErrorContext(url=url, method=method, timestamp=time.time() * 1000, **extra)


def create_http_error(
    status: int,
    message: str,
    url: Optional[str] = None,
    method: Optional[str] = None,
    original_error: Optional[BaseException] = None,
) -> RequestError:
    """Create an HTTP error carrying the response status."""
    return RequestError(
        message,
        type=RequestErrorType.HTTP_ERROR,
        status=status,
        is_http_error=True,
        context=_context(url, method),
        original_error=original_error,
    )


def create_network_error(
    message: str,
    url: Optional[str] = None,
    method: Optional[str] = None,
    original_error: Optional[BaseException] = None,
    code: Optional[str] = None,
) -> RequestError:
    """Create a network-level error (no HTTP response)."""
    return RequestError(
        message,
        type=RequestErrorType.NETWORK_ERROR,
        code=code,
        context=_context(url, method),
        original_error=original_error,
    )


def create_timeout_error(
    message: str,
    url: Optional[str] = None,
    method: Optional[str] = None,
    timeout: Optional[float] = None,
    original_error: Optional[BaseException] = None,
) -> RequestError:
    """Create a timeout error."""
    metadata = {"timeout": timeout} if timeout is not None else None
    return RequestError(
        message,
        type=RequestErrorType.TIMEOUT_ERROR,
        context=_context(url, method, metadata=metadata),
        original_error=original_error,
    )


def create_validation_error(message: str, code: str) -> RequestError:
    """Create a configuration/validation error with a stable code."""
    return RequestError(
        message,
        type=RequestErrorType.VALIDATION_ERROR,
        code=code,
    )


def wrap_error(
    error: BaseException,
    url: Optional[str] = None,
    method: Optional[str] = None,
    message: Optional[str] = None,
    duration_ms: Optional[float] = None,
    tag: Optional[str] = None,
) -> RequestError:
    """
    Normalize any exception into a ``RequestError``.

    A ``RequestError`` is returned as-is so that callers sharing one failure
    observe the same object.
    """
    if isinstance(error, RequestError):
        return error

    return RequestError(
        message or str(error) or type(error).__name__,
        original_error=error,
        context=_context(url, method, duration_ms=duration_ms, tag=tag),
    )
