"""pkgaudit CLI: Typer-based command-line interface.

Provides the ``pkgaudit`` command with subcommands for auditing named
packages and package.json manifests.

All output uses Rich for formatted terminal display.
"""
