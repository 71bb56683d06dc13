"""SyncClient: the consumer-facing facade over the synchronization engine.

Builds one instance of every component and wires them together:

    CacheStore ← SubscriptionRegistry (change listener)
               ← RequestDeduper (put)
               ← RevalidationScheduler (invalidation hook, release listener)
               ← MutationCoordinator (invalidate)

Consumers use three primitives:

- :meth:`SyncClient.use_resource`: observe a key for the handle's lifetime
- :meth:`SyncClient.use_mutation`: write, then invalidate related keys
- :meth:`SyncClient.use_infinite`: page through a collection

Usage::

    async with SyncClient(settings=Settings(base_url="http://localhost:3000")) as client:
        async with client.use_resource("GET", "/logical-things", poll_interval_ms=1000) as things:
            async for state in things.updates():
                print(state.data)
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from typing import Any

import structlog

from resourcesync.config.settings import Settings
from resourcesync.interfaces.transport_provider import ITransportProvider
from resourcesync.models.cache import CacheEntry, CacheKey, EntryState, ResourceState
from resourcesync.sync.cache_store import CacheStore
from resourcesync.sync.deduper import RequestDeduper
from resourcesync.sync.infinite import InfiniteResource, PageParams
from resourcesync.sync.key_encoder import decode_body, encode
from resourcesync.sync.mutations import MutationCoordinator
from resourcesync.sync.scheduler import RevalidationScheduler
from resourcesync.sync.subscriptions import Subscription, SubscriptionRegistry
from resourcesync.utils.logging import get_logger


class SyncClient:
    """One isolated cache + scheduler + mutation pipeline over a transport.

    Parameters
    ----------
    transport:
        Request transport.  Defaults to an :class:`HttpxTransportProvider`
        built from *settings*.
    settings:
        Client settings.  Defaults to ``Settings()`` (environment / .env).
    prefix:
        Key namespace; defaults to ``settings.key_prefix``.
    """

    def __init__(
        self,
        transport: ITransportProvider | None = None,
        settings: Settings | None = None,
        prefix: str | None = None,
    ) -> None:
        self._settings = settings or Settings()
        if transport is None:
            from resourcesync.providers.transport.httpx_transport import (
                HttpxTransportProvider,
            )

            transport = HttpxTransportProvider(settings=self._settings)
        self._transport = transport
        self._prefix = self._settings.key_prefix if prefix is None else prefix

        self._store = CacheStore(
            retention_seconds=self._settings.retention_seconds,
            max_entries=self._settings.max_entries,
        )
        self._registry = SubscriptionRegistry(self._store)
        self._deduper = RequestDeduper(self._store)
        self._scheduler = RevalidationScheduler(
            self._store,
            self._registry,
            self._deduper,
            self.load,
            policy=self._settings.interval_policy,
        )
        self._mutations = MutationCoordinator(
            self._store,
            self._registry,
            self._scheduler,
            self._transport,
            prefix=self._prefix,
        )
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def transport(self) -> ITransportProvider:
        return self._transport

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def deduper(self) -> RequestDeduper:
        return self._deduper

    @property
    def scheduler(self) -> RevalidationScheduler:
        return self._scheduler

    @property
    def mutations(self) -> MutationCoordinator:
        return self._mutations

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def key(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
    ) -> CacheKey:
        return encode(method, path, params, prefix=self._prefix)

    async def load(self, key: CacheKey) -> Any:
        """Run the network call a key describes.  Not deduplicated."""
        return await self._transport.request(
            key.method, key.path, list(key.query), decode_body(key)
        )

    async def fetch(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        """One-shot deduplicated read that also populates the cache."""
        key = self.key(method, path, params)
        return await self._deduper.fetch(key, lambda: self.load(key))

    def use_resource(
        self,
        method: str,
        path: str,
        params: Mapping[str, Any] | None = None,
        poll_interval_ms: int | None = None,
        on_change: Callable | None = None,
        consumer_id: str | None = None,
    ) -> ResourceHandle:
        """Subscribe to a resource until the returned handle is closed.

        Starts a fetch right away unless the cached entry is FRESH and
        younger than ``dedupe_interval_ms`` or a fetch is already running.
        Must be called with a running event loop.

        Raises
        ------
        InvalidRequestShape
            If the request cannot be encoded.
        """
        key = self.key(method, path, params)
        interval = (
            poll_interval_ms
            if poll_interval_ms is not None
            else self._settings.default_poll_interval_ms
        )
        handle = ResourceHandle(
            client=self,
            key=key,
            consumer_id=consumer_id or uuid.uuid4().hex[:12],
            interval_ms=interval,
            on_change=on_change,
        )
        handle._open()
        return handle

    def use_mutation(self, method: str, path: str) -> MutationHandle:
        return MutationHandle(self, method, path)

    def use_infinite(
        self,
        method: str,
        path: str,
        get_params: PageParams,
    ) -> InfiniteResource:
        """Paged reads: ``get_params(index, previous_page)`` → params or ``None``."""
        return InfiniteResource(self, method, path, get_params)

    async def mutate(
        self,
        method: str,
        path: str,
        payload: Any = None,
        params: Mapping[str, Any] | None = None,
        affects: Iterable[str] = (),
    ) -> Any:
        return await self._mutations.mutate(method, path, payload, params, affects)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Stop every timer and delivery task, then close the transport."""
        await self._scheduler.aclose()
        await self._registry.aclose()
        await self._deduper.aclose()
        await self._transport.aclose()
        self._logger.debug("client_closed", entries=len(self._store))

    async def __aenter__(self) -> SyncClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _needs_revalidation(self, key: CacheKey) -> bool:
        entry = self._store.get(key)
        if entry is None or entry.state in (EntryState.IDLE, EntryState.STALE, EntryState.FAILED):
            return True
        if entry.state == EntryState.FETCHING:
            # A FETCHING entry with nothing in flight was orphaned by a
            # cancelled call.
            return self._deduper.in_flight(key) is None
        age = entry.age_seconds()
        return age is None or age * 1000 >= self._settings.dedupe_interval_ms


class ResourceHandle:
    """A live subscription to one resource.

    Read ``state`` (or ``data`` / ``error`` / ``is_loading``) at any time;
    iterate :meth:`updates` to react to changes.  Close it (or leave its
    ``async with`` block) to unsubscribe.
    """

    def __init__(
        self,
        client: SyncClient,
        key: CacheKey,
        consumer_id: str,
        interval_ms: int | None = None,
        on_change: Callable | None = None,
    ) -> None:
        self._client = client
        self._key = key
        self._consumer_id = consumer_id
        self._interval_ms = interval_ms
        self._user_on_change = on_change
        self._subscription: Subscription | None = None
        self._changed = asyncio.Event()
        self._closed = False

    @property
    def key(self) -> CacheKey:
        return self._key

    @property
    def consumer_id(self) -> str:
        return self._consumer_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def entry(self) -> CacheEntry | None:
        return self._client.store.get(self._key)

    @property
    def state(self) -> ResourceState:
        return ResourceState.from_entry(self.entry)

    @property
    def data(self) -> Any:
        return self.state.data

    @property
    def error(self) -> Any:
        return self.state.error

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    async def refetch(self) -> Any:
        return await self._client.scheduler.refetch(self._key)

    async def updates(self) -> AsyncIterator[ResourceState]:
        """Yield the current state, then the state after each delivered change.

        The current state is yielded first only when the key already has an
        entry.  Changes that arrive while the consumer is busy are
        coalesced into the latest state; a committed version is never
        yielded twice.  Ends when the handle is closed.  Supports a single
        iterating consumer.
        """
        last_version: int | None = None
        current = self.entry
        if current is not None and not self._closed:
            last_version = current.version
            yield ResourceState.from_entry(current)

        while not self._closed:
            await self._changed.wait()
            self._changed.clear()
            if self._closed:
                return
            entry = self.entry
            version = entry.version if entry is not None else -1
            if version == last_version:
                continue
            last_version = version
            yield ResourceState.from_entry(entry)

    def close(self) -> None:
        """Unsubscribe.  Idempotent.  An in-flight fetch is left to finish."""
        if self._closed:
            return
        self._closed = True
        self._changed.set()
        if self._subscription is not None:
            self._client.registry.unsubscribe(self._subscription)
            self._client.store.release(self._key)
            if self._client.registry.is_subscribed(self._key):
                self._client.scheduler.reschedule(self._key)

    async def __aenter__(self) -> ResourceHandle:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()

    def _open(self) -> None:
        client = self._client
        client.store.retain(self._key)
        self._subscription = client.registry.subscribe(
            self._key,
            self._consumer_id,
            self._on_change,
            interval_ms=self._interval_ms,
        )
        client.scheduler.reschedule(self._key)
        if client._needs_revalidation(self._key):
            client.scheduler.start_refetch(self._key)

    def _on_change(self, entry: CacheEntry) -> Any:
        self._changed.set()
        if self._user_on_change is not None:
            return self._user_on_change(ResourceState.from_entry(entry))
        return None


class MutationHandle:
    """Bound ``(method, path)`` write, the counterpart of ``use_resource``."""

    def __init__(self, client: SyncClient, method: str, path: str) -> None:
        self._client = client
        self._method = method
        self._path = path

    async def mutate(
        self,
        payload: Any = None,
        params: Mapping[str, Any] | None = None,
        affects: Iterable[str] = (),
    ) -> Any:
        return await self._client.mutate(self._method, self._path, payload, params, affects)
