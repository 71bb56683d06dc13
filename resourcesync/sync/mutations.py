"""Mutation Coordinator: perform a write, then invalidate what it touched.

Writes are executed unconditionally through the transport.  They are never
deduplicated and never applied optimistically to the cache.

    success → affected keys marked STALE → subscribed ones refetched
    failure → MutationFailed raised, cache left exactly as it was

The default invalidation policy is full-collection: every cached key whose
resolved path equals the mutation's resolved path (any method, any query)
is affected.  Callers can widen it with extra paths, e.g. a
``PUT /items/3`` that should also refresh ``/items``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from resourcesync.interfaces.transport_provider import ITransportProvider
from resourcesync.models.cache import CacheKey, MutationDescriptor
from resourcesync.sync.cache_store import CacheStore
from resourcesync.sync.key_encoder import encode, resolve_path
from resourcesync.sync.scheduler import RevalidationScheduler
from resourcesync.sync.subscriptions import SubscriptionRegistry
from resourcesync.utils.errors import MutationFailed
from resourcesync.utils.logging import get_logger


class MutationCoordinator:
    """Executes writes and keeps the read cache consistent with them."""

    def __init__(
        self,
        store: CacheStore,
        registry: SubscriptionRegistry,
        scheduler: RevalidationScheduler,
        transport: ITransportProvider,
        prefix: str = "",
    ) -> None:
        self._store = store
        self._registry = registry
        self._scheduler = scheduler
        self._transport = transport
        self._prefix = prefix
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def mutate(
        self,
        method: str,
        path: str,
        payload: Any = None,
        params: Mapping[str, Any] | None = None,
        affects: Iterable[str] = (),
    ) -> Any:
        """Perform a write and revalidate the keys it affects.

        Parameters
        ----------
        method:
            Write method (``POST``, ``PUT``, ``PATCH``, ``DELETE``, …).
        path:
            Path template of the target.
        payload:
            JSON-serializable request body.
        params:
            Optional ``path`` / ``query`` sections, as for reads.
        affects:
            Extra path templates (resolved with the same path params) whose
            cached keys are invalidated too.

        Returns
        -------
        Any
            The transport's response, unchanged.

        Raises
        ------
        InvalidRequestShape
            Before any network call, if the request cannot be encoded.
        MutationFailed
            If the write fails.  The original error is chained and exposed
            as ``.error``; no cache entry is touched.
        """
        request_params = {k: v for k, v in (params or {}).items() if k != "body"}
        target = encode(method, path, {**request_params, "body": payload}, prefix=self._prefix)
        path_params = request_params.get("path")
        extra_paths = [resolve_path(extra, path_params) for extra in affects]

        self._logger.debug("mutation_started", method=target.method, path=target.path)
        try:
            response = await self._transport.request(
                target.method, target.path, list(target.query), payload
            )
        except Exception as exc:
            self._logger.warning(
                "mutation_failed",
                method=target.method,
                path=target.path,
                error=str(exc),
            )
            raise MutationFailed(
                f"{target.method} {target.path} failed: {exc}",
                provider_name=getattr(exc, "provider_name", None),
                error=exc,
                status_code=getattr(exc, "status_code", None),
            ) from exc

        descriptor = MutationDescriptor(
            method=target.method,
            path=target.path,
            affected_keys=frozenset(self.affected_keys(target.path, extra_paths)),
        )
        await self._revalidate(descriptor)
        return response

    def affected_keys(self, path: str, extra_paths: Iterable[str] = ()) -> list[CacheKey]:
        """Cached keys sharing *path* (or any of *extra_paths*)."""
        keys: dict[CacheKey, None] = {}
        for candidate in (path, *extra_paths):
            for key in self._store.keys_for_path(candidate, self._prefix):
                keys[key] = None
        return list(keys)

    async def _revalidate(self, descriptor: MutationDescriptor) -> None:
        # The scheduler's invalidation hook starts one forced refetch per
        # subscribed key inside invalidate(); await those, never new ones.
        self._store.invalidate(descriptor.affected_keys)

        refetches: dict[CacheKey, asyncio.Task] = {}
        for key in sorted(descriptor.affected_keys):
            if not self._registry.is_subscribed(key):
                continue
            task = self._scheduler.pending(key)
            if task is not None:
                refetches[key] = task
        subscribed = list(refetches)
        self._logger.info(
            "mutation_succeeded",
            method=descriptor.method,
            path=descriptor.path,
            affected=len(descriptor.affected_keys),
            refetching=len(subscribed),
        )
        if not subscribed:
            return

        results = await asyncio.gather(
            *(asyncio.shield(task) for task in refetches.values()),
            return_exceptions=True,
        )
        for key, result in zip(subscribed, results):
            if isinstance(result, BaseException):
                # Already recorded on the entry as FAILED.
                self._logger.warning(
                    "post_mutation_refetch_failed", key=str(key), error=str(result)
                )
