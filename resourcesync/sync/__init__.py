"""The synchronization engine: key encoding, caching, dedup, polling, mutations."""

from resourcesync.sync.cache_store import CacheStore
from resourcesync.sync.deduper import InFlightRequest, RequestDeduper
from resourcesync.sync.key_encoder import encode
from resourcesync.sync.mutations import MutationCoordinator
from resourcesync.sync.scheduler import RevalidationScheduler, TimerHandle
from resourcesync.sync.subscriptions import Subscription, SubscriptionRegistry
from resourcesync.sync.infinite import InfiniteResource
from resourcesync.sync.client import MutationHandle, ResourceHandle, SyncClient

__all__ = [
    "CacheStore",
    "InFlightRequest",
    "InfiniteResource",
    "MutationCoordinator",
    "MutationHandle",
    "RequestDeduper",
    "ResourceHandle",
    "RevalidationScheduler",
    "Subscription",
    "SubscriptionRegistry",
    "SyncClient",
    "TimerHandle",
    "encode",
]
