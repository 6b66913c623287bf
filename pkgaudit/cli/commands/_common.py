"""Shared execution path for the audit commands."""

from __future__ import annotations

import asyncio
from enum import Enum

import typer
from rich.console import Console

from pkgaudit.config import AuditSettings, settings
from pkgaudit.core.errors import PipelineError
from pkgaudit.core.orchestrator import AuditOrchestrator
from pkgaudit.models.report import Severity
from pkgaudit.models.selection import DependencySelection
from pkgaudit.monitor.renderer import ReportRenderer

console = Console()
err_console = Console(stderr=True)

EXIT_FINDINGS = 1
EXIT_PIPELINE_ERROR = 2


class Backend(str, Enum):
    LOCAL = "local"
    DOCKER = "docker"


def build_orchestrator(run_settings: AuditSettings) -> AuditOrchestrator:
    return AuditOrchestrator.from_settings(run_settings)


def run_selection(
    selection: DependencySelection,
    *,
    backend: Backend | None,
    json_output: bool,
    fail_on: Severity | None,
) -> None:
    """Audit *selection*, print the outcome, and exit with the right code."""
    run_settings = settings
    if backend:
        run_settings = settings.model_copy(update={"backend": backend.value})

    orchestrator = build_orchestrator(run_settings)
    progress = ReportRenderer(console=err_console)
    orchestrator.subscribe(progress.on_transition)

    try:
        report = asyncio.run(orchestrator.run_audit(selection))
    except PipelineError as exc:
        progress.print_error(exc)
        raise typer.Exit(code=EXIT_PIPELINE_ERROR) from exc

    if report is None:
        err_console.print("[yellow]Nothing to audit.[/yellow]")
        return

    if json_output:
        typer.echo(report.to_wire().decode("utf-8"))
    else:
        ReportRenderer(console=console).print_report(report)

    if fail_on is not None and report.at_or_above(fail_on):
        raise typer.Exit(code=EXIT_FINDINGS)
