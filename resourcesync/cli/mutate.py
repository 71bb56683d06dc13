# =============================================================================
# resourcesync/cli/mutate.py: Perform one write through the engine
# =============================================================================
#
# Sends a single mutation through SyncClient.mutate and prints the
# response as JSON.  Useful for poking a backend while `watch` runs in
# another terminal.
#
# Typical usage:
#   python -m resourcesync.cli.mutate POST /logical-things --data '[{"name": "x"}]'
#   python -m resourcesync.cli.mutate DELETE /logical-things/{id} --path-param id=7
# =============================================================================

"""Standalone CLI that performs one mutation and prints the response."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from resourcesync.cli.watch import add_common_arguments, apply_overrides, build_params
from resourcesync.utils.errors import MutationFailed, ResourceSyncError
from resourcesync.utils.logging import configure_logging


async def _run(args: argparse.Namespace) -> int:
    from resourcesync.sync.client import SyncClient

    settings = apply_overrides(args)
    configure_logging(log_level=settings.log_level, stream=sys.stderr)

    payload = json.loads(args.data) if args.data is not None else None

    async with SyncClient(settings=settings) as client:
        mutation = client.use_mutation(args.method, args.path)
        try:
            response = await mutation.mutate(payload, build_params(args))
        except MutationFailed as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1

    print(json.dumps(response, default=str, indent=2))
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m resourcesync.cli.mutate",
        description="Perform one write request and print the response as JSON.",
    )
    parser.add_argument("method", help="Write method, e.g. POST, PUT, PATCH, DELETE.")
    parser.add_argument("path", help="Path template, e.g. /logical-things/{id}.")
    parser.add_argument("--data", default=None, help="JSON request body.")
    add_common_arguments(parser)
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the mutate tool."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        exit_code = asyncio.run(_run(args))
    except json.JSONDecodeError as exc:
        print(f"Error: --data is not valid JSON: {exc}", file=sys.stderr)
        exit_code = 2
    except (ValueError, ResourceSyncError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 2
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
