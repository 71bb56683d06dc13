"""Utility modules for resourcesync.

- **errors** -- Exception hierarchy rooted at ResourceSyncError; read
  failures, write failures and bad request shapes each get their own
  subclass so callers can handle them separately.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
"""

from resourcesync.utils.errors import (
    ConfigurationError,
    InvalidRequestShape,
    MutationFailed,
    ResourceSyncError,
    TransportError,
)
from resourcesync.utils.logging import configure_logging, get_logger

__all__ = [
    "ConfigurationError",
    "InvalidRequestShape",
    "MutationFailed",
    "ResourceSyncError",
    "TransportError",
    "configure_logging",
    "get_logger",
]
