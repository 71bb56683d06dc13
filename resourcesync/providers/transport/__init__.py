"""Transport providers.

HttpxTransportProvider issues JSON requests with a pooled
``httpx.AsyncClient``.  Any other client (a generated OpenAPI client, a
test fake) can be used by implementing ITransportProvider.
"""

from resourcesync.providers.transport.httpx_transport import HttpxTransportProvider

__all__ = ["HttpxTransportProvider"]
