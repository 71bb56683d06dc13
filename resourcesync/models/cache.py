"""Cache data models for the resourcesync engine.

Defines the cache key, per-entry state machine, and the immutable entry
snapshots handed to subscribers.

Architecture note:
    ``CacheEntry`` is frozen.  The Cache Store never mutates an entry in
    place; every transition produces a new snapshot via
    ``model_copy(update={...})`` and swaps it into the table.  Subscribers
    therefore hold snapshots that can never change underneath them, and a
    notification always describes a state the store has already committed.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# CacheKey: canonical identity of a logical request.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, order=True)
class CacheKey:
    """Canonical, hashable, totally-ordered identity of a request.

    Built by :func:`resourcesync.sync.key_encoder.encode`; do not construct
    by hand unless every component is already canonical (upper-case method,
    substituted path, name-sorted query, canonical JSON body).
    """

    prefix: str
    method: str
    path: str
    query: tuple[tuple[str, str], ...] = ()
    body: str = ""
    # Informational only: two templates resolving to one path are one request.
    template: str = field(default="", compare=False)

    @property
    def query_string(self) -> str:
        from urllib.parse import urlencode

        return urlencode(self.query)

    @property
    def digest(self) -> str:
        """SHA-256 of the canonical form; stable across processes."""
        return hashlib.sha256(str(self).encode("utf-8")).hexdigest()

    def __str__(self) -> str:
        target = self.path
        if self.query:
            target = f"{target}?{self.query_string}"
        text = f"{self.method} {target}"
        if self.body:
            text = f"{text} {self.body}"
        if self.prefix:
            text = f"{self.prefix}:{text}"
        return text


# ---------------------------------------------------------------------------
# EntryState: the per-key state machine.
# ---------------------------------------------------------------------------
class EntryState(str, Enum):  # noqa: UP042
    """Lifecycle of a cache entry.

        IDLE → FETCHING → {FRESH, FAILED} → STALE → FETCHING → …

    IDLE is only ever the initial state; there is no terminal state while
    the entry has subscribers.
    """

    IDLE = "IDLE"
    FETCHING = "FETCHING"
    FRESH = "FRESH"
    STALE = "STALE"
    FAILED = "FAILED"


class ErrorInfo(BaseModel):
    """Serializable description of a failed fetch."""

    model_config = ConfigDict(frozen=True)

    type: str
    message: str
    status_code: int | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> ErrorInfo:
        return cls(
            type=type(exc).__name__,
            message=str(exc),
            status_code=getattr(exc, "status_code", None),
        )


# ---------------------------------------------------------------------------
# CacheEntry: immutable snapshot of one key's cached state.
# ---------------------------------------------------------------------------
class CacheEntry(BaseModel):
    """The last known value, error, and freshness of one key.

    ``value`` is kept across FETCHING, STALE, and FAILED so consumers keep
    seeing prior data while a refetch is pending.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: CacheKey
    state: EntryState = EntryState.IDLE
    value: Any = None
    # True once any fetch has succeeded; distinguishes "no value yet" from a
    # legitimate ``None`` response body.
    has_value: bool = False
    error: ErrorInfo | None = None
    last_fetched_at: datetime | None = None
    # Monotonic commit counter, bumped on every transition of this key.
    version: int = 0

    @property
    def is_loading(self) -> bool:
        """True while the first fetch is outstanding and nothing is displayable."""
        return self.state == EntryState.FETCHING and not self.has_value and self.error is None

    def age_seconds(self, now: datetime | None = None) -> float | None:
        if self.last_fetched_at is None:
            return None
        current = now or datetime.now(tz=timezone.utc)  # noqa: UP017
        return (current - self.last_fetched_at).total_seconds()


class ResourceState(BaseModel):
    """Consumer-facing view of an entry: ``{data, error, is_loading}``."""

    model_config = ConfigDict(frozen=True)

    data: Any = None
    error: ErrorInfo | None = None
    is_loading: bool = True
    state: EntryState = EntryState.IDLE

    @classmethod
    def from_entry(cls, entry: CacheEntry | None) -> ResourceState:
        if entry is None:
            return cls()
        return cls(
            data=entry.value,
            error=entry.error,
            is_loading=entry.is_loading or entry.state == EntryState.IDLE,
            state=entry.state,
        )


# ---------------------------------------------------------------------------
# Transient descriptors
# ---------------------------------------------------------------------------
class MutationDescriptor(BaseModel):
    """A write operation and the keys it invalidates.  Exists only for the
    duration of one ``mutate`` call."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: str
    path: str
    affected_keys: frozenset[CacheKey] = Field(default_factory=frozenset)
