"""Main Typer application: imports and registers all CLI commands.

Entry point: ``pkgaudit`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from pkgaudit import __version__
from pkgaudit.cli.commands.audit import audit_cmd
from pkgaudit.cli.commands.manifest import manifest_cmd
from pkgaudit.config import settings

app = typer.Typer(
    name="pkgaudit",
    help="pkgaudit: audit npm dependencies inside a disposable sandbox.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="audit", help="Audit one or more named packages.")(audit_cmd)
app.command(name="manifest", help="Audit the dependencies of a package.json.")(manifest_cmd)


def configure_logging(level: str) -> None:
    """Route stdlib logging through Rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to PKGAUDIT_LOG_LEVEL).",
    ),
) -> None:
    configure_logging(log_level or settings.log_level)


@app.command(name="version", help="Show the pkgaudit version.")
def version_cmd() -> None:
    typer.echo(f"pkgaudit {__version__}")


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
