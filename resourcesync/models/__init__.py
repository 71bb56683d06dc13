"""resourcesync domain models: re-exports the cache data model."""

from resourcesync.models.cache import (
    CacheEntry,
    CacheKey,
    EntryState,
    ErrorInfo,
    MutationDescriptor,
    ResourceState,
)

__all__ = [
    "CacheEntry",
    "CacheKey",
    "EntryState",
    "ErrorInfo",
    "MutationDescriptor",
    "ResourceState",
]
