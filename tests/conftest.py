"""Pytest configuration and fixtures for fetch_features tests."""
import asyncio
from typing import Any, Callable, Generator
from unittest.mock import AsyncMock

import pytest

from fetch_features import (
    CacheFeature,
    IdempotentFeature,
    MemoryCacheStore,
    RequestDescriptor,
    create_network_error,
)


USERS_PAYLOAD = {"users": [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Linus"}]}


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, milliseconds: float) -> None:
        self.now += milliseconds


@pytest.fixture
def clock() -> FakeClock:
    """Create a controllable clock."""
    return FakeClock()


@pytest.fixture
def users_descriptor() -> RequestDescriptor:
    """GET https://api.example.com/users"""
    return RequestDescriptor(url="https://api.example.com/users")


@pytest.fixture
def requestor() -> AsyncMock:
    """Requestor that yields to the event loop once and returns a payload."""
    mock = AsyncMock()

    async def respond(descriptor: RequestDescriptor) -> Any:
        await asyncio.sleep(0)
        return {"users": [dict(user) for user in USERS_PAYLOAD["users"]]}

    mock.request.side_effect = respond
    return mock


@pytest.fixture
def memory_store(clock: FakeClock) -> MemoryCacheStore:
    """Create a memory cache store driven by the fake clock."""
    return MemoryCacheStore(max_entries=100, clock=clock)


@pytest.fixture
def cache_feature(requestor: AsyncMock, clock: FakeClock) -> Generator[CacheFeature, None, None]:
    """Create a cache feature for testing."""
    feature = CacheFeature(requestor, clock=clock)
    yield feature
    feature.destroy()


@pytest.fixture
def idempotent_feature(
    requestor: AsyncMock, clock: FakeClock
) -> Generator[IdempotentFeature, None, None]:
    """Create an idempotent feature for testing."""
    feature = IdempotentFeature(requestor, clock=clock)
    yield feature
    feature.destroy()


@pytest.fixture
def abortable_requestor() -> Callable[..., AsyncMock]:
    """
    Factory for a requestor that blocks until ``gate`` is set and honours
    ``descriptor.signal`` by failing with an ABORTED error.
    """

    def make(gate: asyncio.Event, result: Any = None) -> AsyncMock:
        mock = AsyncMock()

        async def respond(descriptor: RequestDescriptor) -> Any:
            opened = asyncio.ensure_future(gate.wait())
            aborted = asyncio.ensure_future(descriptor.signal.wait())
            done, pending = await asyncio.wait(
                {opened, aborted}, return_when=asyncio.FIRST_COMPLETED
            )
            for waiter in pending:
                waiter.cancel()
            if aborted in done:
                raise create_network_error(
                    "Request aborted", url=descriptor.url, code="ABORTED"
                )
            return result

        mock.request.side_effect = respond
        return mock

    return make
