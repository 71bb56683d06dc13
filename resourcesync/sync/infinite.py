"""Paged ("infinite") reads over a collection endpoint.

Each page is an ordinary cache key fetched through the Request Deduper, so
two consumers paging the same collection share both network calls and
cache entries.  Which page comes next is decided by a caller-supplied
function::

    def next_page(index: int, previous: Any | None) -> dict | None:
        if previous is not None and not previous:
            return None                      # empty page: end reached
        return {"query": {"limit": 50, "offset": index * 50}}
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from resourcesync.models.cache import CacheKey
from resourcesync.utils.logging import get_logger

if TYPE_CHECKING:
    from resourcesync.sync.client import SyncClient

PageParams = Callable[[int, Any], Mapping[str, Any] | None]


class InfiniteResource:
    """An ordered list of loaded pages for one collection.

    Page entries are retained in the store while the resource is open so
    they are not evicted between loads.
    """

    def __init__(
        self,
        client: SyncClient,
        method: str,
        path: str,
        get_params: PageParams,
    ) -> None:
        self._client = client
        self._method = method
        self._path = path
        self._get_params = get_params
        self._keys: list[CacheKey] = []
        self._reached_end = False
        self._logger = get_logger(__name__)

    @property
    def keys(self) -> list[CacheKey]:
        return list(self._keys)

    @property
    def size(self) -> int:
        return len(self._keys)

    @property
    def reached_end(self) -> bool:
        return self._reached_end

    @property
    def pages(self) -> list[Any]:
        """Last known value of every loaded page, in order."""
        pages = []
        for key in self._keys:
            entry = self._client.store.get(key)
            pages.append(entry.value if entry is not None else None)
        return pages

    async def load_more(self) -> Any | None:
        """Fetch the next page.  Returns ``None`` once the end is reached.

        A failed page is not kept, so calling again retries it.
        """
        if self._reached_end:
            return None

        index = len(self._keys)
        previous = self.pages[-1] if self._keys else None
        params = self._get_params(index, previous)
        if params is None:
            self._reached_end = True
            self._logger.debug("infinite_end_reached", path=self._path, pages=index)
            return None

        key = self._client.key(self._method, self._path, params)
        self._client.store.retain(key)
        self._keys.append(key)
        try:
            return await self._client.deduper.fetch(key, lambda: self._client.load(key))
        except Exception:
            self._keys.pop()
            self._client.store.release(key)
            raise

    async def load(self, size: int) -> list[Any]:
        """Load pages until *size* pages are loaded or the end is reached."""
        while len(self._keys) < size and not self._reached_end:
            await self.load_more()
        return self.pages

    async def refetch(self) -> list[Any]:
        """Revalidate every loaded page, in order."""
        for key in list(self._keys):
            await self._client.scheduler.refetch(key)
        return self.pages

    def close(self) -> None:
        for key in self._keys:
            self._client.store.release(key)
        self._keys.clear()
