# =============================================================================
# resourcesync/cli/watch.py: Watch a resource and print each new value
# =============================================================================
#
# Subscribes to one resource through SyncClient.use_resource and prints the
# cached value as JSON every time it changes.  Polling, dedup and error
# recording all come from the engine; this file is only argument parsing
# and printing.
#
# Typical usage:
#   python -m resourcesync.cli.watch /logical-things --interval-ms 1000
#   python -m resourcesync.cli.watch /logical-things --method post --count 3
#   python -m resourcesync.cli.watch /things/{id} --path-param id=7 --query depth=1
#
# Values go to stdout, logs go to stderr.  --quiet keeps only warnings.
# =============================================================================

"""Standalone CLI that polls a resource and prints every change as JSON.

Usage::

    python -m resourcesync.cli.watch /logical-things --interval-ms 1000
    python -m resourcesync.cli.watch /logical-things --count 1 --quiet
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from resourcesync.config.loader import load_settings
from resourcesync.config.settings import Settings
from resourcesync.models.cache import EntryState, ResourceState
from resourcesync.utils.errors import ResourceSyncError
from resourcesync.utils.logging import configure_logging


# ---------------------------------------------------------------------------
# Helpers shared with the mutate CLI
# ---------------------------------------------------------------------------


def parse_pairs(pairs: list[str] | None, option: str) -> dict[str, Any]:
    """Turn ``["a=1", "a=2", "b=x"]`` into ``{"a": ["1", "2"], "b": "x"}``."""
    result: dict[str, Any] = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            raise ValueError(f"{option} expects NAME=VALUE, got {pair!r}")
        if name in result:
            existing = result[name]
            result[name] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            result[name] = value
    return result


def build_params(args: argparse.Namespace) -> dict[str, Any]:
    params: dict[str, Any] = {}
    path_params = parse_pairs(args.path_param, "--path-param")
    query = parse_pairs(args.query, "--query")
    if path_params:
        params["path"] = path_params
    if query:
        params["query"] = query
    return params


def apply_overrides(args: argparse.Namespace) -> Settings:
    """Load settings from --config and overlay command-line overrides."""
    settings = load_settings(args.config)
    updates: dict[str, Any] = {}
    if args.base_url:
        updates["base_url"] = args.base_url.rstrip("/")
    if args.quiet:
        updates["log_level"] = "WARNING"
    return settings.model_copy(update=updates) if updates else settings


def format_state(state: ResourceState) -> str:
    if state.error is not None and state.state == EntryState.FAILED:
        return json.dumps({"error": state.error.model_dump()}, default=str)
    return json.dumps(state.data, default=str, indent=2)


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace) -> int:
    from resourcesync.sync.client import SyncClient

    settings = apply_overrides(args)
    configure_logging(log_level=settings.log_level, stream=sys.stderr)

    printed = 0
    async with SyncClient(settings=settings) as client:
        try:
            handle = client.use_resource(
                args.method,
                args.path,
                build_params(args),
                poll_interval_ms=args.interval_ms,
                consumer_id="cli-watch",
            )
        except ResourceSyncError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2

        async with handle:
            async for state in handle.updates():
                if state.state not in (EntryState.FRESH, EntryState.FAILED):
                    continue
                print(format_state(state), flush=True)
                printed += 1
                if args.count and printed >= args.count:
                    break

    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--base-url", default=None, help="Override RESOURCESYNC_BASE_URL.")
    parser.add_argument(
        "--config",
        default="resourcesync.yaml",
        help="YAML settings file (default: resourcesync.yaml, optional).",
    )
    parser.add_argument(
        "--path-param",
        action="append",
        metavar="NAME=VALUE",
        help="Path parameter substituted into {NAME}. Repeatable.",
    )
    parser.add_argument(
        "--query",
        action="append",
        metavar="NAME=VALUE",
        help="Query parameter. Repeat a NAME for multiple values.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m resourcesync.cli.watch",
        description="Subscribe to a resource and print each new value as JSON.",
    )
    parser.add_argument("path", help="Path template, e.g. /logical-things/{id}.")
    parser.add_argument("--method", default="GET", help="Request method (default: GET).")
    parser.add_argument(
        "--interval-ms",
        type=int,
        default=1000,
        help="Polling interval in milliseconds (default: 1000).",
    )
    parser.add_argument(
        "--count",
        type=int,
        default=0,
        help="Exit after printing this many values (default: run forever).",
    )
    add_common_arguments(parser)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the watch tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.interval_ms is not None and args.interval_ms <= 0:
        parser.error("--interval-ms must be positive")

    try:
        exit_code = asyncio.run(_run(args))
    except (ValueError, ResourceSyncError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 2
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
