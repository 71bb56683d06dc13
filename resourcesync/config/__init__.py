"""Configuration module: exports Settings, its enums, and load_settings."""

from resourcesync.config.loader import load_settings
from resourcesync.config.settings import IntervalPolicy, RequestMode, Settings

__all__ = ["IntervalPolicy", "RequestMode", "Settings", "load_settings"]
