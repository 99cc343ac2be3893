"""
In-flight request registry.

Tracks the one shared future per key that concurrent identical calls attach
to. All registry methods are synchronous so lookup and registration can
happen in one span with no suspension point in between.
"""
import asyncio
import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .errors import create_network_error
from .types import RequestDescriptor


@dataclass
class PendingRequest:
    """In-flight request shared by every caller with the same key."""

    future: "asyncio.Future[Any]"
    """Settles with the network result or error."""

    subscribers: int = 1
    """Number of callers attached, the leader included."""

    started_at: float = 0
    """When the request was initiated (ms)."""

    descriptor: Optional[RequestDescriptor] = None
    """Descriptor of the leading call."""

    signal: Optional[asyncio.Event] = None
    """Abort signal of the shared call; set once every caller has aborted."""

    aborted: int = 0
    """Number of callers that left through their own abort signal."""

    def release(self) -> bool:
        """
        Detach one aborted caller.

        Returns True, and sets the shared signal, when no attached caller is
        left waiting.
        """
        self.aborted += 1
        if self.aborted < self.subscribers:
            return False
        if self.signal is not None:
            self.signal.set()
        return True


def shared_descriptor(descriptor: RequestDescriptor) -> Tuple[RequestDescriptor, asyncio.Event]:
    """Copy ``descriptor`` with a fresh abort signal owned by the shared call."""
    signal = asyncio.Event()
    return dataclasses.replace(descriptor, signal=signal), signal


class PendingRequestMap:
    """
    Key -> PendingRequest map owned by a single feature instance.
    """

    def __init__(self) -> None:
        self._in_flight: Dict[str, PendingRequest] = {}

    def get(self, key: str) -> Optional[PendingRequest]:
        """Get an in-flight request by key."""
        return self._in_flight.get(key)

    def register(self, key: str, request: PendingRequest) -> None:
        """Register an in-flight request."""
        self._in_flight[key] = request

    def attach(self, key: str) -> Optional[PendingRequest]:
        """Join an existing in-flight request, bumping its subscriber count."""
        existing = self._in_flight.get(key)
        if existing is not None:
            existing.subscribers += 1
        return existing

    def delete(self, key: str, request: Optional[PendingRequest] = None) -> bool:
        """
        Remove an in-flight request.

        When ``request`` is given the entry is only removed if it is still the
        registered one.
        """
        current = self._in_flight.get(key)
        if current is None:
            return False
        if request is not None and current is not request:
            return False
        del self._in_flight[key]
        return True

    def has(self, key: str) -> bool:
        """Check if a request is in-flight."""
        return key in self._in_flight

    def size(self) -> int:
        """Get current number of in-flight requests."""
        return len(self._in_flight)

    def clear(self) -> None:
        """Forget all in-flight requests. Their futures still settle."""
        self._in_flight.clear()

    async def wait(self, key: str, request: PendingRequest, descriptor: RequestDescriptor) -> Any:
        """
        Wait for ``request`` on behalf of the caller that sent ``descriptor``.

        The caller's own ``signal`` only detaches that caller: it receives an
        ABORTED error while the others keep waiting. The shared call is
        aborted, and forgotten, once every attached caller has aborted.
        Cancelling the waiting task never cancels the shared future.
        """
        shared = asyncio.shield(request.future)
        if descriptor.signal is None:
            return await shared

        aborted = asyncio.ensure_future(descriptor.signal.wait())
        try:
            await asyncio.wait({shared, aborted}, return_when=asyncio.FIRST_COMPLETED)
            if shared.done():
                return shared.result()
        finally:
            aborted.cancel()
            if not shared.done():
                shared.cancel()

        if request.release():
            self.delete(key, request)
        raise create_network_error(
            "Request aborted",
            url=descriptor.url,
            method=descriptor.method,
            code="ABORTED",
        )
