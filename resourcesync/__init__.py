"""resourcesync: client-side data synchronization for JSON APIs.

A cache that maps a logical request (method + path + parameters) to its
most recent response, deduplicates concurrent identical requests,
revalidates on a timer, and invalidates/refetches affected entries after a
mutation.

Start with :class:`SyncClient`::

    from resourcesync import Settings, SyncClient

    async with SyncClient(settings=Settings(base_url="http://localhost:3000")) as client:
        handle = client.use_resource("GET", "/logical-things", poll_interval_ms=1000)
"""

from resourcesync.config.settings import IntervalPolicy, RequestMode, Settings
from resourcesync.models.cache import CacheEntry, CacheKey, EntryState, ErrorInfo, ResourceState
from resourcesync.sync.client import MutationHandle, ResourceHandle, SyncClient
from resourcesync.sync.key_encoder import encode
from resourcesync.utils.errors import (
    ConfigurationError,
    InvalidRequestShape,
    MutationFailed,
    ResourceSyncError,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    "CacheEntry",
    "CacheKey",
    "ConfigurationError",
    "EntryState",
    "ErrorInfo",
    "IntervalPolicy",
    "InvalidRequestShape",
    "MutationFailed",
    "MutationHandle",
    "RequestMode",
    "ResourceHandle",
    "ResourceState",
    "ResourceSyncError",
    "Settings",
    "SyncClient",
    "TransportError",
    "encode",
]
