"""CLI tools for resourcesync.

- ``python -m resourcesync.cli.watch``: subscribe to a resource and print
  every new value as JSON.
- ``python -m resourcesync.cli.mutate``: perform one write and print the
  response.

Both use argparse and build their own SyncClient from settings.
"""
