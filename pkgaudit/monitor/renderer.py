"""Rich terminal renderer for audit runs and reports.

Color scheme
------------
- bold red   : critical
- red        : high
- yellow     : moderate
- cyan       : low
- dim        : info
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pkgaudit.core.errors import OutputParseFailed, PipelineError, ProcessExitedNonZero
from pkgaudit.models.pipeline import PipelineState, StateTransition
from pkgaudit.models.report import AuditReport, FixInfo, Severity, Vulnerability

# ---------------------------------------------------------------------------
# Severity / state -> Rich style mapping
# ---------------------------------------------------------------------------

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MODERATE: "yellow",
    Severity.LOW: "cyan",
    Severity.INFO: "dim",
}

_STATE_LABELS: dict[PipelineState, str] = {
    PipelineState.IDLE: "[dim]Idle[/dim]",
    PipelineState.BOOTING: "[yellow]Booting sandbox[/yellow]",
    PipelineState.INSTALLING: "[yellow]Installing dependencies[/yellow]",
    PipelineState.CONFIGURING_REGISTRY: "[yellow]Configuring registry[/yellow]",
    PipelineState.AUDITING: "[yellow]Running audit[/yellow]",
    PipelineState.SUCCEEDED: "[green]Audit complete[/green]",
    PipelineState.FAILED: "[bold red]Audit failed[/bold red]",
}

RAW_OUTPUT_EXCERPT = 2000


class ReportRenderer:
    """Renders audit reports, run progress and errors as Rich output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Run progress
    # ------------------------------------------------------------------

    def on_transition(self, transition: StateTransition) -> None:
        """State listener: print one line per transition."""
        label = _STATE_LABELS.get(transition.to_state, transition.to_state.value)
        stamp = transition.timestamp_utc.strftime("%H:%M:%S")
        self.console.print(f"[dim]{stamp}[/dim] {label}")

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def render_report(self, report: AuditReport) -> Panel:
        """Render severity counts and affected packages as a Panel."""
        parts: list = [self._build_counts_table(report)]
        if report.vulnerabilities:
            parts += [Text(""), self._build_packages_table(report)]
        else:
            parts += [Text(""), Text.from_markup("[green]No vulnerabilities found.[/green]")]

        border = "red" if report.has_findings else "green"
        return Panel(
            Group(*parts),
            title="[bold]Vulnerabilities[/bold]",
            subtitle=f"audit report v{report.audit_report_version}",
            border_style=border,
            padding=(1, 2),
        )

    def _build_counts_table(self, report: AuditReport) -> Table:
        counts = report.metadata.vulnerabilities
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        for severity in Severity:
            table.add_column(severity.value.capitalize(), justify="center")
        table.add_column("Total", justify="center")

        row: list[str] = []
        for severity in Severity:
            value = counts.get(severity)
            style = _SEVERITY_STYLES[severity] if value else "dim"
            row.append(f"[{style}]{value}[/{style}]")
        row.append(f"[bold]{counts.total}[/bold]")
        table.add_row(*row)
        return table

    def _build_packages_table(self, report: AuditReport) -> Table:
        table = Table(
            title="Affected Packages",
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        table.add_column("Package", min_width=20)
        table.add_column("Version", min_width=12)
        table.add_column("Severity", justify="center")
        table.add_column("Effects")
        table.add_column("Fix")

        for vuln in report.at_or_above(Severity.INFO):
            style = _SEVERITY_STYLES[vuln.severity]
            direct = " [dim](direct)[/dim]" if vuln.is_direct else ""
            table.add_row(
                f"{vuln.name}{direct}",
                vuln.range or "[dim]-[/dim]",
                f"[{style}]{vuln.severity.value}[/{style}]",
                ", ".join(vuln.effects) or "[dim]-[/dim]",
                _describe_fix(vuln),
            )
        return table

    def print_report(self, report: AuditReport) -> None:
        self.console.print(self.render_report(report))

    # ------------------------------------------------------------------
    # Errors
    # ------------------------------------------------------------------

    def render_error(self, error: PipelineError) -> Panel:
        lines = [f"[bold]{error.kind}[/bold]", "", str(error)]
        if isinstance(error, ProcessExitedNonZero) and error.stderr:
            lines += ["", "[dim]stderr:[/dim]", _excerpt(error.stderr)]
        if isinstance(error, OutputParseFailed):
            lines += ["", "[dim]raw output:[/dim]", _excerpt(error.raw_output) or "[dim](empty)[/dim]"]
        return Panel(
            "\n".join(lines),
            title="[bold red]Error[/bold red]",
            border_style="red",
            padding=(1, 2),
        )

    def print_error(self, error: PipelineError) -> None:
        self.console.print(self.render_error(error))


def _describe_fix(vuln: Vulnerability) -> str:
    fix = vuln.fix_available
    if isinstance(fix, FixInfo):
        major = " [yellow](major)[/yellow]" if fix.is_semver_major else ""
        return f"{fix.name}@{fix.version}{major}"
    return "[green]yes[/green]" if fix else "[dim]no[/dim]"


def _excerpt(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace")
    if len(text) > RAW_OUTPUT_EXCERPT:
        text = text[:RAW_OUTPUT_EXCERPT] + "..."
    return text.replace("[", r"\[")
