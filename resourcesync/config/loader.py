"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. resourcesync.yaml : Static defaults checked into the consuming app
#   2. .env file         : Local developer overrides (not committed)
#   3. Environment vars  : Set at deploy time
#
# The YAML file groups settings into sections:
#
#   transport:
#     base_url: http://localhost:3000
#     request_mode: no-cors
#   revalidation:
#     default_poll_interval_ms: 1000
#     interval_policy: min
#   cache:
#     retention_seconds: 300
#   logging:
#     level: DEBUG
#
# Sections are flattened onto Settings fields; anything the environment
# sets explicitly wins over the file.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from resourcesync.config.settings import Settings
from resourcesync.utils.errors import ConfigurationError

# Section keys whose names differ from the Settings field they feed.
_RENAMED_KEYS: dict[tuple[str, str], str] = {
    ("logging", "level"): "log_level",
    ("app", "env"): "app_env",
}


def load_settings(path: str | Path = "resourcesync.yaml") -> Settings:
    """Load YAML config and overlay environment-based Settings.

    Args:
        path: Path to the YAML configuration file.  A missing file is not
            an error; defaults and environment values still apply.

    Returns:
        A fully resolved :class:`Settings` instance.

    Raises:
        ConfigurationError: If the file is not a mapping or a value fails
            validation.
    """
    config_path = Path(path)
    yaml_config: Any = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(
            f"{config_path} must contain a mapping, got {type(yaml_config).__name__}"
        )

    file_values = _flatten_sections(yaml_config)

    try:
        env_settings = Settings()
        env_values = env_settings.model_dump(include=env_settings.model_fields_set)
        return Settings(**{**file_values, **env_values})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _flatten_sections(config: dict[str, Any]) -> dict[str, Any]:
    """Flatten ``{section: {key: value}}`` into Settings field names.

    Top-level scalar keys are passed through unchanged so a flat file works
    too.
    """
    flat: dict[str, Any] = {}
    for section, body in config.items():
        if isinstance(body, dict):
            for key, value in body.items():
                flat[_RENAMED_KEYS.get((section, key), key)] = value
        else:
            flat[section] = body
    return flat
