"""Client settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# Values are read from TWO sources (in priority order):
#
#   1. **Environment variables**: e.g. RESOURCESYNC_BASE_URL=http://api:3000
#   2. **.env file**: key=value lines in the working directory
#
# Field ``base_url`` maps to ``RESOURCESYNC_BASE_URL`` (prefix + upper-case).
# Defaults apply when neither source sets a field.  ``app_env`` and
# ``log_level`` are shared with the logging setup and read without prefix.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from enum import Enum

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class IntervalPolicy(str, Enum):  # noqa: UP042
    """How competing poll intervals for one key are resolved.

    ``MIN`` lets the most eager consumer win (favours freshness);
    ``MAX`` lets the laziest consumer win (favours fewer requests).
    """

    MIN = "min"
    MAX = "max"


class RequestMode(str, Enum):  # noqa: UP042
    """Fetch request mode forwarded to the server as ``Sec-Fetch-Mode``."""

    CORS = "cors"
    NO_CORS = "no-cors"
    SAME_ORIGIN = "same-origin"


class Settings(BaseSettings):
    """resourcesync client settings.

    Environment variables override defaults. Loaded from .env when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="RESOURCESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # === Transport ===
    base_url: str = "http://localhost:3000"
    request_mode: RequestMode = RequestMode.CORS
    # The cache itself never times out a request; the transport does.
    request_timeout_seconds: float = 30.0

    # === Cache keys ===
    # Namespace for every key this client produces, so two clients pointed
    # at different APIs never share entries.
    key_prefix: str = ""

    # === Revalidation ===
    default_poll_interval_ms: int | None = None
    interval_policy: IntervalPolicy = IntervalPolicy.MIN
    # A FRESH entry younger than this is not refetched when a new consumer
    # subscribes to it.
    dedupe_interval_ms: int = 2000

    # === Eviction ===
    retention_seconds: float = 300.0
    max_entries: int = 1000

    # === App Config ===
    app_env: str = Field(
        default="development",
        validation_alias=AliasChoices("RESOURCESYNC_APP_ENV", "APP_ENV"),
    )
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("RESOURCESYNC_LOG_LEVEL", "LOG_LEVEL"),
    )

    @field_validator("default_poll_interval_ms")
    @classmethod
    def _positive_interval(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("default_poll_interval_ms must be positive")
        return value

    @field_validator("dedupe_interval_ms")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("max_entries")
    @classmethod
    def _positive_size(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("max_entries must be positive")
        return value

    @field_validator("request_timeout_seconds", "retention_seconds")
    @classmethod
    def _positive_seconds(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")
