"""Unit tests for CacheStore."""

from __future__ import annotations

import pytest

from resourcesync.models.cache import CacheEntry, CacheKey, EntryState, ErrorInfo
from resourcesync.sync.cache_store import CacheStore
from resourcesync.sync.key_encoder import encode
from resourcesync.utils.errors import TransportError

ITEMS = encode("GET", "/items")
ITEMS_PAGE = encode("GET", "/items", {"query": {"limit": 5}})
OTHER = encode("GET", "/other")


# ======================================================================
# Transitions
# ======================================================================


class TestTransitions:
    def test_get_unknown_key_returns_none(self, store: CacheStore) -> None:
        assert store.get(ITEMS) is None
        assert ITEMS not in store

    def test_put_value_marks_fresh(self, store: CacheStore) -> None:
        entry = store.put(ITEMS, value=[1, 2])
        assert entry.state == EntryState.FRESH
        assert entry.value == [1, 2]
        assert entry.has_value is True
        assert entry.error is None
        assert entry.last_fetched_at is not None
        assert store.get(ITEMS) == entry

    def test_put_none_value_is_still_a_value(self, store: CacheStore) -> None:
        entry = store.put(ITEMS, value=None)
        assert entry.has_value is True
        assert entry.state == EntryState.FRESH

    def test_put_error_keeps_previous_value(self, store: CacheStore) -> None:
        store.put(ITEMS, value=[1])
        entry = store.put(ITEMS, error=TransportError("boom", status_code=503))
        assert entry.state == EntryState.FAILED
        assert entry.value == [1]
        assert entry.error == ErrorInfo(type="TransportError", message="boom", status_code=503)

    def test_success_after_failure_clears_error(self, store: CacheStore) -> None:
        store.put(ITEMS, error=TransportError("boom"))
        entry = store.put(ITEMS, value=[2])
        assert entry.error is None
        assert entry.state == EntryState.FRESH

    def test_put_requires_exactly_one_outcome(self, store: CacheStore) -> None:
        with pytest.raises(ValueError):
            store.put(ITEMS)
        with pytest.raises(ValueError):
            store.put(ITEMS, value=1, error=TransportError("x"))

    def test_versions_increase_on_every_transition(self, store: CacheStore) -> None:
        first = store.mark_fetching(ITEMS)
        second = store.put(ITEMS, value=1)
        store.mark_stale(ITEMS)
        third = store.get(ITEMS)
        assert first.version < second.version < third.version

    def test_entries_are_replaced_not_mutated(self, store: CacheStore) -> None:
        before = store.put(ITEMS, value=[1])
        store.mark_stale(ITEMS)
        assert before.state == EntryState.FRESH
        assert store.get(ITEMS).state == EntryState.STALE


class TestMarkStale:
    def test_fresh_becomes_stale_and_keeps_value(self, store: CacheStore) -> None:
        store.put(ITEMS, value=[1])
        assert store.mark_stale(ITEMS) is True
        entry = store.get(ITEMS)
        assert entry.state == EntryState.STALE
        assert entry.value == [1]

    def test_failed_becomes_stale(self, store: CacheStore) -> None:
        store.put(ITEMS, error=TransportError("x"))
        assert store.mark_stale(ITEMS) is True

    def test_unknown_and_fetching_are_left_alone(self, store: CacheStore) -> None:
        assert store.mark_stale(ITEMS) is False
        store.mark_fetching(ITEMS)
        assert store.mark_stale(ITEMS) is False
        assert store.get(ITEMS).state == EntryState.FETCHING

    def test_mark_fetching_keeps_value(self, store: CacheStore) -> None:
        store.put(ITEMS, value=[1])
        entry = store.mark_fetching(ITEMS)
        assert entry.state == EntryState.FETCHING
        assert entry.value == [1]
        assert entry.is_loading is False


# ======================================================================
# Invalidation
# ======================================================================


class TestInvalidate:
    def test_invalidate_marks_known_keys_stale(self, store: CacheStore) -> None:
        store.put(ITEMS, value=[1])
        store.put(ITEMS_PAGE, value=[1])
        known = store.invalidate([ITEMS, ITEMS_PAGE, OTHER])
        assert set(known) == {ITEMS, ITEMS_PAGE}
        assert store.get(ITEMS).state == EntryState.STALE
        assert store.get(ITEMS_PAGE).state == EntryState.STALE
        assert store.get(OTHER) is None

    def test_invalidate_fires_hooks_with_known_keys(self, store: CacheStore) -> None:
        seen: list[list[CacheKey]] = []
        store.add_invalidation_hook(seen.append)
        store.put(ITEMS, value=[1])

        store.invalidate([ITEMS, OTHER])
        store.invalidate([OTHER])

        assert seen == [[ITEMS]]

    def test_keys_for_path_matches_every_query_variant(self, store: CacheStore) -> None:
        store.put(ITEMS, value=[])
        store.put(ITEMS_PAGE, value=[])
        store.put(OTHER, value=[])
        store.put(encode("GET", "/items", prefix="elsewhere"), value=[])

        assert store.keys_for_path("/items") == sorted([ITEMS, ITEMS_PAGE])


# ======================================================================
# Change listeners
# ======================================================================


class TestListeners:
    def test_listener_sees_committed_snapshot(self, store: CacheStore) -> None:
        observed: list[tuple[CacheEntry, CacheEntry | None]] = []
        store.add_listener(lambda entry: observed.append((entry, store.get(entry.key))))

        store.put(ITEMS, value=[1])

        entry, committed = observed[0]
        assert committed == entry

    def test_failing_listener_does_not_block_others(self, store: CacheStore) -> None:
        received: list[CacheEntry] = []

        def broken(entry: CacheEntry) -> None:
            raise RuntimeError("listener broke")

        store.add_listener(broken)
        store.add_listener(received.append)
        store.put(ITEMS, value=[1])

        assert len(received) == 1

    def test_removed_listener_is_not_called(self, store: CacheStore) -> None:
        received: list[CacheEntry] = []
        store.add_listener(received.append)
        store.remove_listener(received.append)
        store.put(ITEMS, value=[1])
        assert received == []


# ======================================================================
# Reference counting and eviction
# ======================================================================


class TestRetention:
    def test_retained_entries_survive_pool_overflow(self) -> None:
        store = CacheStore(retention_seconds=60, max_entries=2)
        pinned = encode("GET", "/pinned")
        store.retain(pinned)
        store.put(pinned, value="keep")

        loose = [encode("GET", f"/loose/{i}") for i in range(3)]
        for key in loose:
            store.put(key, value=str(key))

        assert store.get(pinned).value == "keep"
        assert loose[0] not in store
        assert loose[1] in store
        assert loose[2] in store

    def test_released_entry_becomes_evictable(self) -> None:
        store = CacheStore(retention_seconds=60, max_entries=2)
        key = encode("GET", "/pinned")
        store.retain(key)
        store.put(key, value="v")
        assert store.reference_count(key) == 1

        assert store.release(key) == 0
        assert store.get(key).value == "v"

        store.put(encode("GET", "/a"), value=1)
        store.put(encode("GET", "/b"), value=2)
        assert key not in store

    def test_reference_counts_nest(self, store: CacheStore) -> None:
        store.retain(ITEMS)
        store.retain(ITEMS)
        assert store.release(ITEMS) == 1
        assert store.release(ITEMS) == 0
        assert store.reference_count(ITEMS) == 0

    def test_retain_revives_retired_entry(self, store: CacheStore) -> None:
        store.put(ITEMS, value=[1])
        store.retain(ITEMS)
        assert store.get(ITEMS).value == [1]
        assert len(store) == 1
