"""Request Deduper: at most one in-flight network call per cache key.

For N concurrent ``fetch`` calls on the same key exactly one loader call
happens, and all N callers observe that call's outcome: the same response
object or the same exception instance.

The check-and-insert on the in-flight table contains no ``await``, so on a
single event loop it cannot interleave with another caller's lookup.

A forced start (used after a successful write) does not join: it replaces
the in-flight record with a new call.  The replaced call still runs to
completion for whoever awaits it, but its outcome is never written to the
cache, so a response read before the write cannot overwrite one read after.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from resourcesync.models.cache import CacheKey
from resourcesync.sync.cache_store import CacheStore
from resourcesync.utils.errors import ResourceSyncError, TransportError
from resourcesync.utils.logging import get_logger

Loader = Callable[[], Awaitable[Any]]


@dataclass
class InFlightRequest:
    """An outstanding loader call and the number of callers sharing it."""

    key: CacheKey
    task: asyncio.Task
    subscriber_count: int = 1
    generation: int = 0


class RequestDeduper:
    """Coalesces concurrent fetches of one key into a single loader call.

    On completion the outcome is written to the :class:`CacheStore` via
    ``put`` and the in-flight record is removed in the same synchronous
    step, before any waiting caller resumes.
    """

    def __init__(self, store: CacheStore) -> None:
        self._store = store
        self._in_flight: dict[CacheKey, InFlightRequest] = {}
        self._superseded: set[asyncio.Task] = set()
        self._generations = itertools.count(1)
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch(self, key: CacheKey, loader: Loader, force: bool = False) -> Any:
        """Fetch *key*, joining an in-flight call when one exists.

        Cancelling the awaiting caller does not cancel the shared call; it
        still completes and updates the cache.

        Raises
        ------
        ResourceSyncError
            The loader's failure.  Foreign exceptions are wrapped in
            :class:`TransportError`.
        """
        task = self.start(key, loader, force=force)
        return await asyncio.shield(task)

    def start(self, key: CacheKey, loader: Loader, force: bool = False) -> asyncio.Task:
        """Begin (or join) a fetch without awaiting it.

        With ``force`` an in-flight call is superseded instead of joined.
        Must be called from within a running event loop.
        """
        existing = self._in_flight.get(key)
        if existing is not None:
            if not force:
                existing.subscriber_count += 1
                self._logger.debug(
                    "fetch_joined",
                    key=str(key),
                    subscriber_count=existing.subscriber_count,
                )
                return existing.task
            self._superseded.add(existing.task)
            existing.task.add_done_callback(self._superseded.discard)
            self._logger.debug(
                "fetch_superseded",
                key=str(key),
                generation=existing.generation,
            )

        generation = next(self._generations)
        task = asyncio.get_running_loop().create_task(self._run(key, loader, generation))
        self._in_flight[key] = InFlightRequest(key=key, task=task, generation=generation)
        task.add_done_callback(_retrieve_exception)
        self._logger.debug("fetch_started", key=str(key), forced=force)
        self._store.mark_fetching(key)
        return task

    def in_flight(self, key: CacheKey) -> InFlightRequest | None:
        return self._in_flight.get(key)

    def __len__(self) -> int:
        return len(self._in_flight)

    async def aclose(self) -> None:
        """Cancel every outstanding call.  Used on client shutdown only."""
        tasks = [request.task for request in self._in_flight.values()]
        tasks.extend(self._superseded)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._in_flight.clear()
        self._superseded.clear()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _run(self, key: CacheKey, loader: Loader, generation: int) -> Any:
        try:
            value = await loader()
        except asyncio.CancelledError:
            self._settle(key, generation)
            raise
        except ResourceSyncError as exc:
            self._fail(key, generation, exc)
            raise
        except Exception as exc:
            error = TransportError(
                f"Loader for {key} failed: {exc!r}",
                provider_name=type(exc).__module__.split(".")[0],
            )
            self._fail(key, generation, error)
            raise error from exc

        request = self._settle(key, generation)
        if request is None:
            self._logger.debug("fetch_discarded", key=str(key), generation=generation)
            return value

        self._store.put(key, value=value)
        self._logger.debug(
            "fetch_completed",
            key=str(key),
            subscriber_count=request.subscriber_count,
        )
        return value

    def _fail(self, key: CacheKey, generation: int, error: ResourceSyncError) -> None:
        if self._settle(key, generation) is None:
            self._logger.debug("fetch_discarded", key=str(key), generation=generation)
            return
        self._store.put(key, error=error)
        self._logger.warning("fetch_failed", key=str(key), error=str(error))

    def _settle(self, key: CacheKey, generation: int) -> InFlightRequest | None:
        """Remove the in-flight record if it still belongs to *generation*."""
        request = self._in_flight.get(key)
        if request is None or request.generation != generation:
            return None
        return self._in_flight.pop(key)


def _retrieve_exception(task: asyncio.Task) -> None:
    # Marks the exception retrieved when every caller was cancelled.
    if not task.cancelled():
        task.exception()
