"""Interface definitions for the engine's external collaborators.

ITransportProvider  →  HttpxTransportProvider (resourcesync/providers/transport/)
"""

from resourcesync.interfaces.transport_provider import ITransportProvider

__all__ = ["ITransportProvider"]
