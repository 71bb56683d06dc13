"""Custom exception hierarchy for resourcesync.

All library exceptions inherit from :class:`ResourceSyncError`, which
carries an optional ``provider_name`` so error handlers can identify which
collaborator (e.g. "httpx", "key_encoder") raised the failure.

The hierarchy mirrors the three ways a request can go wrong:

    ResourceSyncError  (base -- catch-all for any resourcesync error)
    +-- InvalidRequestShape   (key encoding failed -- caller error, never retried)
    +-- TransportError        (loader / network failure -- recorded on the entry)
    +-- MutationFailed        (write failure -- raised to the mutation caller)
    +-- ConfigurationError    (invalid settings at startup)

A ``TransportError`` is never fatal: the cache entry moves to FAILED and
the next scheduled revalidation retries it.  A ``MutationFailed`` always
reaches the caller and the read cache is left untouched.
"""

from __future__ import annotations


class ResourceSyncError(Exception):
    """Base exception for all resourcesync errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets,
    e.g. ``[httpx] GET /items returned 503``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------

class InvalidRequestShape(ResourceSyncError):
    """Raised when a (method, path, params) triple cannot be encoded into a key.

    Typical causes: a ``{placeholder}`` in the path template with no matching
    path parameter, or an unknown params section.
    """

    def __init__(
        self,
        message: str = "Request shape is invalid",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TransportError(ResourceSyncError):
    """Raised when the loader fails to produce a response.

    ``status_code`` is set when the server answered with a non-2xx status;
    it is ``None`` for connection-level failures.
    """

    def __init__(
        self,
        message: str = "Transport request failed",
        provider_name: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._status_code = status_code

    @property
    def status_code(self) -> int | None:
        return self._status_code


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------

class MutationFailed(ResourceSyncError):
    """Raised when a write operation fails.

    The original exception is available as ``error`` (and as ``__cause__``)
    so callers can inspect it exactly as the transport produced it.
    """

    def __init__(
        self,
        message: str = "Mutation failed",
        provider_name: str | None = None,
        error: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._error = error
        self._status_code = status_code

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def status_code(self) -> int | None:
        return self._status_code


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class ConfigurationError(ResourceSyncError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
