"""Concrete adapters for the interfaces in ``resourcesync.interfaces``."""
