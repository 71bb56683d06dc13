"""Revalidation Scheduler: timer-driven and on-demand refetches.

Each polled key owns one cancellable timer task.  On every tick a FRESH
entry is marked STALE and refetched through the Request Deduper, so a tick
that lands while a fetch is already running simply joins it.

A failed fetch never stops the timer: the entry moves to FAILED and the
next tick retries at the same fixed period (no backoff).

The scheduler wires itself to its collaborators at construction:
    - registry release listener → :meth:`cancel` (last subscriber left)
    - store invalidation hook   → force a refetch of subscribed keys now
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from resourcesync.config.settings import IntervalPolicy
from resourcesync.models.cache import CacheKey, EntryState
from resourcesync.sync.cache_store import CacheStore
from resourcesync.sync.deduper import RequestDeduper
from resourcesync.sync.subscriptions import SubscriptionRegistry
from resourcesync.utils.errors import ResourceSyncError
from resourcesync.utils.logging import get_logger

KeyLoader = Callable[[CacheKey], Awaitable[Any]]


@dataclass
class TimerHandle:
    """A key's repeating revalidation timer."""

    key: CacheKey
    interval_ms: int
    task: asyncio.Task
    ticks: int = 0

    def cancel(self) -> None:
        self.task.cancel()


class RevalidationScheduler:
    """Owns the polling timers for subscribed keys.

    Parameters
    ----------
    store:
        Cache store whose entries are marked stale on each tick.
    registry:
        Subscription registry, consulted for interval resolution and for
        which invalidated keys still have observers.
    deduper:
        Every refetch goes through the deduper.
    load:
        Builds and runs the network call for a key.
    policy:
        How competing intervals on one key are resolved.
    """

    def __init__(
        self,
        store: CacheStore,
        registry: SubscriptionRegistry,
        deduper: RequestDeduper,
        load: KeyLoader,
        policy: IntervalPolicy = IntervalPolicy.MIN,
    ) -> None:
        self._store = store
        self._registry = registry
        self._deduper = deduper
        self._load = load
        self._policy = policy
        self._timers: dict[CacheKey, TimerHandle] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

        registry.add_release_listener(self.cancel)
        store.add_invalidation_hook(self._on_invalidated)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def schedule(self, key: CacheKey, interval_ms: int | None) -> TimerHandle | None:
        """Poll *key* every *interval_ms*, replacing any existing timer.

        ``None`` cancels polling for the key.  Scheduling the interval that
        is already active keeps the running timer (and its phase).
        """
        if interval_ms is None:
            self.cancel(key)
            return None
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        existing = self._timers.get(key)
        if existing is not None:
            if existing.interval_ms == interval_ms:
                return existing
            existing.cancel()

        task = asyncio.get_running_loop().create_task(self._poll(key, interval_ms))
        handle = TimerHandle(key=key, interval_ms=interval_ms, task=task)
        self._timers[key] = handle
        self._logger.debug("revalidation_scheduled", key=str(key), interval_ms=interval_ms)
        return handle

    def reschedule(self, key: CacheKey) -> TimerHandle | None:
        """Re-resolve *key*'s interval from its current subscriptions."""
        return self.schedule(key, self._registry.effective_interval(key, self._policy))

    def cancel(self, key: CacheKey) -> bool:
        """Stop polling *key*.  An in-flight fetch is left to complete."""
        handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        self._logger.debug("revalidation_cancelled", key=str(key), ticks=handle.ticks)
        return True

    def interval(self, key: CacheKey) -> int | None:
        handle = self._timers.get(key)
        return handle.interval_ms if handle else None

    def timer(self, key: CacheKey) -> TimerHandle | None:
        return self._timers.get(key)

    def scheduled_keys(self) -> list[CacheKey]:
        return list(self._timers)

    # ------------------------------------------------------------------
    # On-demand revalidation
    # ------------------------------------------------------------------

    async def refetch(self, key: CacheKey, force: bool = False) -> Any:
        """Revalidate *key* once, now.

        Joins an in-flight fetch unless *force* is set, in which case that
        fetch is superseded and its result is not cached.
        """
        return await self._deduper.fetch(key, lambda: self._load(key), force=force)

    def start_refetch(self, key: CacheKey, force: bool = False) -> asyncio.Task:
        """Begin revalidating *key* without waiting for the result."""
        return self._deduper.start(key, lambda: self._load(key), force=force)

    def pending(self, key: CacheKey) -> asyncio.Task | None:
        """The fetch currently responsible for *key*'s next cached value."""
        request = self._deduper.in_flight(key)
        return request.task if request is not None else None

    async def aclose(self) -> None:
        handles = list(self._timers.values())
        self._timers.clear()
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*(h.task for h in handles), return_exceptions=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _poll(self, key: CacheKey, interval_ms: int) -> None:
        while True:
            await asyncio.sleep(interval_ms / 1000)
            handle = self._timers.get(key)
            if handle is not None:
                handle.ticks += 1

            entry = self._store.get(key)
            if entry is not None and entry.state == EntryState.FRESH:
                self._store.mark_stale(key)

            self._logger.debug("revalidation_tick", key=str(key), interval_ms=interval_ms)
            try:
                await self.refetch(key)
            except ResourceSyncError as exc:
                self._logger.warning("revalidation_failed", key=str(key), error=str(exc))

    def _on_invalidated(self, keys: list[CacheKey]) -> None:
        # Forced: a fetch started before the invalidation may carry data
        # the invalidating write has already replaced.
        for key in keys:
            if self._registry.is_subscribed(key):
                self.start_refetch(key, force=True)
