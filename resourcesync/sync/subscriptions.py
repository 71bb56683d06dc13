"""Subscription Registry: which consumers observe which keys.

# ─── HOW NOTIFICATION WORKS ────────────────────────────────────────────
#
# Observer registration plus queue-based dispatch:
#
#   CacheStore ──commit──→ publish(entry) ──put_nowait──→ per-subscription Queue
#                                                         │
#                                            delivery task┘──→ on_change(entry)
#
#   - publish() never awaits, so a store commit and the enqueueing of its
#     notifications happen in one uninterrupted step
#   - each subscription has its own queue drained by its own task, so a
#     consumer sees snapshots in exactly the order the store committed
#     them, each one once
#   - there is no ordering between different consumers
#   - callbacks may be sync or async; one that raises is logged and the
#     next snapshot is still delivered
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from resourcesync.config.settings import IntervalPolicy
from resourcesync.models.cache import CacheEntry, CacheKey
from resourcesync.sync.cache_store import CacheStore
from resourcesync.utils.logging import get_logger

ReleaseListener = Callable[[CacheKey], None]


@dataclass(eq=False)
class Subscription:
    """One consumer's interest in one key.  Doubles as the unsubscribe handle."""

    key: CacheKey
    consumer_id: str
    on_change: Callable
    interval_ms: int | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    queue: asyncio.Queue = field(default_factory=asyncio.Queue, repr=False)
    task: asyncio.Task | None = field(default=None, repr=False)
    active: bool = True


class SubscriptionRegistry:
    """Tracks subscriptions per key and fans store commits out to them.

    Registers itself as a change listener on *store* at construction.
    """

    def __init__(self, store: CacheStore) -> None:
        self._subscriptions: dict[CacheKey, dict[str, Subscription]] = {}
        self._release_listeners: list[ReleaseListener] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)
        store.add_listener(self.publish)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def subscribe(
        self,
        key: CacheKey,
        consumer_id: str,
        on_change: Callable,
        interval_ms: int | None = None,
    ) -> Subscription:
        """Register *on_change* for every committed snapshot of *key*.

        Parameters
        ----------
        key:
            The key to observe.
        consumer_id:
            Caller-chosen identifier, used in logs.
        on_change:
            Sync or async callable taking the new :class:`CacheEntry`.
        interval_ms:
            Polling interval this consumer asks for, or ``None``.

        Returns
        -------
        Subscription
            Pass it to :meth:`unsubscribe` to stop observing.
        """
        if interval_ms is not None and interval_ms <= 0:
            raise ValueError("interval_ms must be positive")

        subscription = Subscription(
            key=key,
            consumer_id=consumer_id,
            on_change=on_change,
            interval_ms=interval_ms,
        )
        subscription.task = asyncio.get_running_loop().create_task(
            self._deliver(subscription)
        )
        self._subscriptions.setdefault(key, {})[subscription.id] = subscription

        self._logger.debug(
            "subscription_added",
            key=str(key),
            consumer_id=consumer_id,
            interval_ms=interval_ms,
            total_subscribers=len(self._subscriptions[key]),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Stop delivering to *subscription*.

        Snapshots still queued for it are dropped.  When it was the key's
        last subscription, release listeners are told.  Returns ``False``
        for a handle that is already inactive.
        """
        if not subscription.active:
            return False
        subscription.active = False
        if subscription.task is not None:
            subscription.task.cancel()

        key = subscription.key
        subscribers = self._subscriptions.get(key, {})
        subscribers.pop(subscription.id, None)
        self._logger.debug(
            "subscription_removed",
            key=str(key),
            consumer_id=subscription.consumer_id,
            remaining_subscribers=len(subscribers),
        )

        if not subscribers:
            self._subscriptions.pop(key, None)
            for listener in list(self._release_listeners):
                listener(key)
        return True

    def publish(self, entry: CacheEntry) -> None:
        """Enqueue *entry* for every active subscriber of its key."""
        for subscription in self._subscriptions.get(entry.key, {}).values():
            subscription.queue.put_nowait(entry)

    def subscriptions(self, key: CacheKey) -> list[Subscription]:
        return list(self._subscriptions.get(key, {}).values())

    def subscriber_count(self, key: CacheKey) -> int:
        return len(self._subscriptions.get(key, {}))

    def is_subscribed(self, key: CacheKey) -> bool:
        return key in self._subscriptions

    def keys(self) -> list[CacheKey]:
        return list(self._subscriptions)

    def effective_interval(
        self,
        key: CacheKey,
        policy: IntervalPolicy = IntervalPolicy.MIN,
    ) -> int | None:
        """Resolve the polling interval for *key* across its subscriptions.

        Subscriptions without an interval do not take part.  Returns
        ``None`` when no subscription asks for polling.
        """
        intervals = [
            s.interval_ms for s in self.subscriptions(key) if s.interval_ms is not None
        ]
        if not intervals:
            return None
        if policy == IntervalPolicy.MAX:
            return max(intervals)
        return min(intervals)

    def add_release_listener(self, listener: ReleaseListener) -> None:
        """Register a callable fired when a key loses its last subscriber."""
        if listener not in self._release_listeners:
            self._release_listeners.append(listener)

    async def drain(self) -> None:
        """Wait until every queued snapshot has been delivered."""
        queues = [
            s.queue for subs in self._subscriptions.values() for s in subs.values()
        ]
        await asyncio.gather(*(queue.join() for queue in queues))

    async def aclose(self) -> None:
        """Cancel every delivery task without firing release listeners."""
        tasks = []
        for subscribers in self._subscriptions.values():
            for subscription in subscribers.values():
                subscription.active = False
                if subscription.task is not None:
                    subscription.task.cancel()
                    tasks.append(subscription.task)
        self._subscriptions.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _deliver(self, subscription: Subscription) -> None:
        """Drain one subscription's queue into its callback, in order."""
        while True:
            entry = await subscription.queue.get()
            try:
                result = subscription.on_change(entry)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "subscriber_callback_error",
                    key=str(subscription.key),
                    consumer_id=subscription.consumer_id,
                    error=str(exc),
                )
            finally:
                subscription.queue.task_done()
