"""Abstract base class for transport providers.

The transport is the engine's only window onto the network: it turns a
resolved request into a response.  Implementations may use httpx, a
generated OpenAPI client, or an in-memory fake in tests.  The adapter
pattern lets the transport be swapped without touching the cache.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ITransportProvider(ABC):
    """Contract for request transports.

    All operations are async so network-backed transports never block the
    event loop.
    """

    @abstractmethod
    async def request(
        self,
        method: str,
        path: str,
        query: list[tuple[str, str]] | None = None,
        body: Any = None,
    ) -> Any:
        """Perform one request and return the decoded response.

        Parameters
        ----------
        method:
            Upper-case HTTP method.
        path:
            Resolved path (placeholders already substituted), relative to
            the transport's base URL.
        query:
            Query parameters as ``(name, value)`` pairs, possibly repeated.
        body:
            JSON-serializable request body, or ``None``.

        Returns
        -------
        Any
            The decoded response body.

        Raises
        ------
        TransportError
            On connection failure or a non-2xx response.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error prefixes."""

    async def aclose(self) -> None:
        """Release any underlying connections.  No-op by default."""
        return None
