"""HTTP transport provider backed by ``httpx.AsyncClient``.

Implements :class:`ITransportProvider` for JSON APIs.  The client is
injected for testability and connection pooling; when none is given one is
built from :class:`Settings` (base URL, timeout, request mode) and owned by
the provider.

Retries are deliberately absent: a failed read is recorded on its cache
entry and retried by the next scheduled revalidation.
"""

from __future__ import annotations

from typing import Any

import httpx

from resourcesync.config.settings import Settings
from resourcesync.interfaces.transport_provider import ITransportProvider
from resourcesync.utils.errors import TransportError
from resourcesync.utils.logging import get_logger

_USER_AGENT = "resourcesync/0.1.0"
_PROVIDER_NAME = "httpx"


class HttpxTransportProvider(ITransportProvider):
    """Transport that issues JSON requests against a base URL.

    Parameters
    ----------
    settings:
        Source of ``base_url``, ``request_timeout_seconds`` and
        ``request_mode``.
    http_client:
        Optional injected client.  An injected client is not closed by
        :meth:`aclose`; its owner is responsible for it.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=self._settings.base_url,
            timeout=self._settings.request_timeout_seconds,
        )
        self._logger = get_logger(__name__)

    def get_provider_name(self) -> str:
        return _PROVIDER_NAME

    def _headers(self, has_body: bool) -> dict[str, str]:
        headers = {
            "User-Agent": _USER_AGENT,
            "Accept": "application/json",
            "Sec-Fetch-Mode": self._settings.request_mode.value,
        }
        if has_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        query: list[tuple[str, str]] | None = None,
        body: Any = None,
    ) -> Any:
        """Send the request and decode the response.

        JSON responses are decoded, empty bodies become ``None``, anything
        else is returned as text.
        """
        try:
            response = await self._http.request(
                method,
                path,
                params=query or None,
                json=body,
                headers=self._headers(body is not None),
            )
        except httpx.HTTPError as exc:
            self._logger.warning(
                "transport_request_failed",
                method=method,
                path=path,
                error=str(exc),
            )
            raise TransportError(
                f"{method} {path} failed: {exc}",
                provider_name=_PROVIDER_NAME,
            ) from exc

        if response.is_error:
            self._logger.warning(
                "transport_unexpected_status",
                method=method,
                path=path,
                status=response.status_code,
            )
            raise TransportError(
                f"{method} {path} returned {response.status_code}: {_error_detail(response)}",
                provider_name=_PROVIDER_NAME,
                status_code=response.status_code,
            )

        self._logger.debug(
            "transport_response",
            method=method,
            path=path,
            status=response.status_code,
        )
        return _decode(response)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(
                f"Invalid JSON in response: {exc}",
                provider_name=_PROVIDER_NAME,
                status_code=response.status_code,
            ) from exc
    return response.text


def _error_detail(response: httpx.Response) -> str:
    """Best-effort short description of an error response body."""
    text = response.text.strip()
    if not text:
        return response.reason_phrase
    return text[:200]
