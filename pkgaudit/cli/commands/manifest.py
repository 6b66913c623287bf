"""``pkgaudit manifest PATH``: audit the dependencies of a package.json.

Both ``dependencies`` and ``devDependencies`` are audited.
"""

from __future__ import annotations

from pathlib import Path

import typer

from pkgaudit.cli.commands._common import Backend, run_selection
from pkgaudit.models.report import Severity
from pkgaudit.models.selection import load_manifest


def manifest_cmd(
    path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="Path to a package.json file.",
    ),
    backend: Backend = typer.Option(
        None,
        "--backend",
        "-b",
        help="Sandbox backend (defaults to PKGAUDIT_BACKEND).",
        case_sensitive=False,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the report as npm audit JSON instead of tables.",
    ),
    fail_on: Severity = typer.Option(
        None,
        "--fail-on",
        help="Exit 1 when a finding at or above this severity exists.",
        case_sensitive=False,
    ),
) -> None:
    """Audit every dependency declared in a package.json."""
    try:
        selection = load_manifest(path)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="PATH") from exc

    run_selection(selection, backend=backend, json_output=json_output, fail_on=fail_on)
