"""
Core types shared by the feature layer.
"""
import asyncio
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Literal, Mapping, Optional, Protocol, TypeVar

T = TypeVar("T")

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class CloneMode(str, Enum):
    """How cached data is handed back to callers."""

    NONE = "none"
    SHALLOW = "shallow"
    DEEP = "deep"


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Transport-agnostic description of one HTTP request.

    Header ordering never matters for equality or key generation. ``signal``,
    ``tag`` and ``metadata`` are diagnostics/transport hints and take no part
    in equality.
    """

    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    params: Mapping[str, Any] = field(default_factory=dict)
    data: Any = None
    timeout: Optional[float] = None
    """Timeout in seconds, enforced by the Requestor."""

    signal: Optional[asyncio.Event] = field(default=None, compare=False)
    """Abort signal forwarded to the Requestor."""

    tag: Optional[str] = field(default=None, compare=False)
    metadata: Optional[Dict[str, Any]] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", (self.method or "GET").upper())
        if self.headers is None:
            object.__setattr__(self, "headers", {})
        if self.params is None:
            object.__setattr__(self, "params", {})

    def with_method(self, method: str) -> "RequestDescriptor":
        """Return a copy with a different HTTP method."""
        return replace(self, method=method)


class Requestor(Protocol):
    """
    Executes exactly one HTTP request.

    Implementations perform no retry, caching or deduplication and fail with
    a ``RequestError`` (or any other exception) when the request fails.
    """

    async def request(self, descriptor: RequestDescriptor) -> Any:
        ...
