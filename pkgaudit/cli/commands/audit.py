"""``pkgaudit audit PACKAGE...``: audit one or more named packages.

Each PACKAGE is ``name`` or ``name@constraint``; a bare name is audited at
``latest``.
"""

from __future__ import annotations

import typer

from pkgaudit.cli.commands._common import Backend, run_selection
from pkgaudit.models.report import Severity
from pkgaudit.models.selection import DependencySelection, parse_package_spec


def audit_cmd(
    packages: list[str] = typer.Argument(
        ...,
        help="Packages to audit, as name or name@constraint.",
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
    """Install the named packages in a sandbox and audit them."""
    try:
        selection = DependencySelection.from_pairs(parse_package_spec(p) for p in packages)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="PACKAGES") from exc

    run_selection(selection, backend=backend, json_output=json_output, fail_on=fail_on)
