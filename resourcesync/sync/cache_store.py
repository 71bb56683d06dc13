"""Cache Store: last-known value, error, and freshness per cache key.

# ─── HOW THE STORE WORKS ───────────────────────────────────────────────
#
#   Deduper ──put()──→ CacheStore ──commit──→ change listeners (Registry)
#   Mutations ──invalidate()──→ CacheStore ──hooks──→ Scheduler (refetch)
#
# Entries are immutable snapshots.  Every transition builds a new
# CacheEntry, swaps it into the table, and only then publishes it to the
# change listeners, so no subscriber ever sees a state that is not
# committed.
#
# Entries are reference counted by the consumers that observe them:
#   - count > 0  → the entry lives in ``_live`` and is never evicted
#   - count == 0 → the entry moves to a cachetools.TTLCache retention
#     pool and is reclaimed after ``retention_seconds`` or when the pool
#     exceeds ``max_entries`` (least recently used first)
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

import structlog
from cachetools import TTLCache

from resourcesync.models.cache import CacheEntry, CacheKey, EntryState, ErrorInfo
from resourcesync.utils.logging import get_logger

ChangeListener = Callable[[CacheEntry], None]
InvalidationHook = Callable[[list[CacheKey]], None]

_MISSING = object()


class CacheStore:
    """Process-wide store of :class:`CacheEntry` snapshots.

    Construct one per client and inject it into every component that needs
    it; there is no module-level instance.

    Parameters
    ----------
    retention_seconds:
        How long an entry nobody observes is kept for a future subscriber.
    max_entries:
        Upper bound on unobserved entries kept at once.
    """

    def __init__(self, retention_seconds: float = 300.0, max_entries: int = 1000) -> None:
        self._live: dict[CacheKey, CacheEntry] = {}
        self._retired: TTLCache[CacheKey, CacheEntry] = TTLCache(
            maxsize=max_entries, ttl=retention_seconds
        )
        self._refcounts: dict[CacheKey, int] = {}
        self._listeners: list[ChangeListener] = []
        self._invalidation_hooks: list[InvalidationHook] = []
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: CacheKey) -> CacheEntry | None:
        """Return the current snapshot for *key*, or ``None`` if unknown."""
        entry = self._live.get(key)
        if entry is None:
            entry = self._retired.get(key)
        return entry

    def keys(self) -> list[CacheKey]:
        return [*self._live, *self._retired.keys()]

    def keys_for_path(self, path: str, prefix: str = "") -> list[CacheKey]:
        """Return every known key for the resolved *path* under *prefix*."""
        return sorted(k for k in self.keys() if k.path == path and k.prefix == prefix)

    def __contains__(self, key: object) -> bool:
        return key in self._live or key in self._retired

    def __len__(self) -> int:
        return len(self._live) + len(self._retired)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def put(
        self,
        key: CacheKey,
        value: Any = _MISSING,
        error: BaseException | ErrorInfo | None = None,
    ) -> CacheEntry:
        """Record a fetch outcome.

        Exactly one of *value* / *error* must be given.  Success → FRESH with
        the new value; failure → FAILED with the previous value kept.
        ``last_fetched_at`` is set to now either way.
        """
        if (value is _MISSING) == (error is None):
            raise ValueError("put() takes exactly one of value or error")

        current = self._current(key)
        now = datetime.now(tz=timezone.utc)  # noqa: UP017
        if error is not None:
            info = error if isinstance(error, ErrorInfo) else ErrorInfo.from_exception(error)
            entry = current.model_copy(update={
                "state": EntryState.FAILED,
                "error": info,
                "last_fetched_at": now,
                "version": current.version + 1,
            })
            self._logger.debug("cache_put_error", key=str(key), error=info.message)
        else:
            entry = current.model_copy(update={
                "state": EntryState.FRESH,
                "value": value,
                "has_value": True,
                "error": None,
                "last_fetched_at": now,
                "version": current.version + 1,
            })
            self._logger.debug("cache_put", key=str(key), version=entry.version)
        self._commit(entry)
        return entry

    def mark_fetching(self, key: CacheKey) -> CacheEntry:
        """Move *key* to FETCHING, keeping its value and error."""
        current = self._current(key)
        if current.state == EntryState.FETCHING:
            return current
        entry = current.model_copy(update={
            "state": EntryState.FETCHING,
            "version": current.version + 1,
        })
        self._commit(entry)
        return entry

    def mark_stale(self, key: CacheKey) -> bool:
        """Move a FRESH or FAILED entry to STALE without discarding its value.

        Returns ``True`` if a transition happened.  Unknown, IDLE, FETCHING
        and already-STALE entries are left alone.
        """
        current = self.get(key)
        if current is None or current.state not in (EntryState.FRESH, EntryState.FAILED):
            return False
        entry = current.model_copy(update={
            "state": EntryState.STALE,
            "version": current.version + 1,
        })
        self._commit(entry)
        self._logger.debug("cache_mark_stale", key=str(key))
        return True

    def invalidate(self, keys: Iterable[CacheKey]) -> list[CacheKey]:
        """Mark *keys* STALE and fire invalidation hooks.

        The Revalidation Scheduler hooks in here to refetch every key that
        still has subscribers.  Returns the keys that exist in the store.
        """
        known = [key for key in dict.fromkeys(keys) if key in self]
        for key in known:
            self.mark_stale(key)

        self._logger.debug("cache_invalidate", keys=[str(k) for k in known])
        if known:
            for hook in list(self._invalidation_hooks):
                hook(known)
        return known

    # ------------------------------------------------------------------
    # Reference counting
    # ------------------------------------------------------------------

    def retain(self, key: CacheKey) -> int:
        """Pin *key* in the live table; returns the new reference count."""
        count = self._refcounts.get(key, 0) + 1
        self._refcounts[key] = count
        if count == 1:
            entry = self._retired.pop(key, None)
            if entry is not None:
                self._live[key] = entry
        return count

    def release(self, key: CacheKey) -> int:
        """Drop one reference; at zero the entry becomes evictable."""
        count = self._refcounts.get(key, 0) - 1
        if count > 0:
            self._refcounts[key] = count
            return count

        self._refcounts.pop(key, None)
        entry = self._live.pop(key, None)
        if entry is not None:
            self._retired[key] = entry
            self._logger.debug("cache_entry_retired", key=str(key))
        return 0

    def reference_count(self, key: CacheKey) -> int:
        return self._refcounts.get(key, 0)

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callable invoked with every committed snapshot."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_invalidation_hook(self, hook: InvalidationHook) -> None:
        if hook not in self._invalidation_hooks:
            self._invalidation_hooks.append(hook)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _current(self, key: CacheKey) -> CacheEntry:
        return self.get(key) or CacheEntry(key=key)

    def _commit(self, entry: CacheEntry) -> None:
        key = entry.key
        if self._refcounts.get(key, 0) > 0:
            self._live[key] = entry
        else:
            self._retired[key] = entry

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as exc:
                self._logger.warning(
                    "cache_listener_error",
                    key=str(key),
                    error=str(exc),
                    listener=getattr(listener, "__name__", repr(listener)),
                )
