"""Shared pytest fixtures for the resourcesync test suite."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
import pytest_asyncio

from resourcesync.config.settings import Settings
from resourcesync.interfaces.transport_provider import ITransportProvider
from resourcesync.sync.cache_store import CacheStore
from resourcesync.sync.client import SyncClient
from resourcesync.sync.deduper import RequestDeduper
from resourcesync.sync.subscriptions import SubscriptionRegistry
from resourcesync.utils.errors import TransportError
from resourcesync.utils.logging import configure_logging

# Bind structlog to the session-wide stderr before any module grabs a logger.
configure_logging(log_level="DEBUG", stream=sys.stderr)


# ---------------------------------------------------------------------------
# Fake transport
# ---------------------------------------------------------------------------


class FakeTransport(ITransportProvider):
    """In-memory transport keyed by ``(METHOD, path)``.

    A route may be a value, an exception instance (raised), or a callable
    ``(query, body) -> value`` that may itself raise.  Callables are invoked
    per request, so they can return a fresh object every time; an async
    callable is awaited, so a single route can be held open.  Setting
    ``gate`` to an unset :class:`asyncio.Event` holds every request until
    the event is set.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[tuple[str, str, tuple[tuple[str, str], ...], Any]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    def route(self, method: str, path: str, response: Any) -> None:
        self.routes[(method.upper(), path)] = response

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _, _ in self.calls if m == method.upper() and p == path)

    def get_provider_name(self) -> str:
        return "fake"

    async def request(
        self,
        method: str,
        path: str,
        query: list[tuple[str, str]] | None = None,
        body: Any = None,
    ) -> Any:
        self.calls.append((method, path, tuple(query or ()), body))
        if self.gate is not None:
            await self.gate.wait()

        if (method, path) not in self.routes:
            raise TransportError(
                f"{method} {path} returned 404: not found",
                provider_name="fake",
                status_code=404,
            )
        handler = self.routes[(method, path)]
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            result = handler(query, body)
            if asyncio.iscoroutine(result):
                return await result
            return result
        return handler

    async def aclose(self) -> None:
        self.closed = True


class Counter:
    """Mutable counter returned by the ``counting_route`` helper."""

    def __init__(self) -> None:
        self.value = 0


def counting_route(factory: Callable[[int], Any]) -> tuple[Callable[..., Any], Counter]:
    """Build a route that returns ``factory(n)`` on the n-th call (1-based)."""
    counter = Counter()

    def handler(query: Any, body: Any) -> Any:
        counter.value += 1
        return factory(counter.value)

    return handler, counter


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    """Settings with a zero dedupe window so every subscribe revalidates."""
    return Settings(
        base_url="http://testserver",
        dedupe_interval_ms=0,
        retention_seconds=60,
        max_entries=100,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store() -> CacheStore:
    return CacheStore(retention_seconds=60, max_entries=100)


@pytest.fixture
def registry(store: CacheStore) -> SubscriptionRegistry:
    return SubscriptionRegistry(store)


@pytest.fixture
def deduper(store: CacheStore) -> RequestDeduper:
    return RequestDeduper(store)


@pytest_asyncio.fixture
async def client(transport: FakeTransport, settings: Settings) -> AsyncIterator[SyncClient]:
    sync_client = SyncClient(transport=transport, settings=settings)
    yield sync_client
    await sync_client.aclose()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* on the event loop until it holds or *timeout* passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
