# =============================================================================
# resourcesync/cli/__main__.py: Package Entry Point
# =============================================================================
#
# `python -m resourcesync.cli` runs the watch tool, the most common CLI
# operation.  For writes run `python -m resourcesync.cli.mutate`.
# =============================================================================

"""Allow ``python -m resourcesync.cli`` execution."""

from resourcesync.cli.watch import main

main()
