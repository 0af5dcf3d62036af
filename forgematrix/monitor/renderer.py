"""Rich terminal renderer for check sets and packages.

Color scheme
------------
- green     : PASSED
- bold red  : FAILED
- dim       : SKIPPED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from forgematrix.models.results import (
    CheckSet,
    DevEnvironment,
    MatrixReport,
    StageResult,
    StageStatus,
)

_STATUS_ICONS: dict[StageStatus, str] = {
    StageStatus.PASSED: "[green]PASSED[/green]",
    StageStatus.FAILED: "[bold red]FAILED[/bold red]",
    StageStatus.SKIPPED: "[dim]SKIPPED[/dim]",
}

_LOG_TAIL_LINES = 20


def _details(result: StageResult) -> str:
    parts: list[str] = []
    if result.test_counts is not None:
        parts.append(
            f"{result.test_counts.passed} passed, {result.test_counts.failed} failed"
        )
    if result.details.get("cache_hit") is True:
        parts.append("[cyan]cache hit[/cyan]")
    elif result.details.get("cache_hit") is False:
        parts.append("compiled")
    reason = result.details.get("reason")
    if reason and not result.passed:
        parts.append(f"[red]{reason}[/red]")
    if result.artifact_ref:
        parts.append(f"[dim]{result.artifact_ref[:48]}[/dim]")
    return " | ".join(parts) if parts else "[dim]-[/dim]"


class CheckRenderer:
    """Renders CheckSets and MatrixReports as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Renderables
    # ------------------------------------------------------------------

    def render_checkset(self, checkset: CheckSet) -> Table:
        table = Table(
            show_header=True,
            header_style="bold cyan",
            expand=True,
            show_lines=False,
        )
        table.add_column("Check", min_width=24)
        table.add_column("Status", min_width=10, justify="center")
        table.add_column("Details", min_width=20)

        for name in sorted(checkset.checks):
            result = checkset.checks[name]
            table.add_row(name, _STATUS_ICONS[result.status], _details(result))
        return table

    def render_report(self, report: MatrixReport) -> Panel:
        verdict = (
            "[bold green]PASSED[/bold green]"
            if report.passed
            else "[bold red]FAILED[/bold red]"
        )
        summary = "  |  ".join([
            f"[bold]Run:[/bold] {report.run_id}",
            f"[bold]Snapshot:[/bold] {report.snapshot_hash[:12]}",
            f"[bold]Platforms:[/bold] {len(report.platforms)}",
            f"[bold]Verdict:[/bold] {verdict}",
        ])
        return Panel(
            Group(self.render_checkset(report.checks), Text(""), Text.from_markup(summary)),
            title="[bold]forgematrix checks[/bold]",
            border_style="green" if report.passed else "red",
            padding=(1, 2),
        )

    # ------------------------------------------------------------------
    # Printing
    # ------------------------------------------------------------------

    def print_report(self, report: MatrixReport, *, show_logs: bool = True) -> None:
        self.console.print(self.render_report(report))
        if show_logs:
            for name in report.failed_checks():
                result = report.checks.get(name)
                if result.status == StageStatus.FAILED and result.log.strip():
                    self.print_log_tail(name, result.log)

    def print_log_tail(self, name: str, log: str) -> None:
        tail = "\n".join(log.rstrip().splitlines()[-_LOG_TAIL_LINES:])
        self.console.print(
            Panel(Text(tail), title=f"[red]{name}[/red] (last lines)", border_style="red")
        )

    def print_failures(self, failed: list[str]) -> None:
        """Print failing check names, one per line, for scripts and humans."""
        if not failed:
            return
        self.console.print("[bold red]Failing checks:[/bold red]")
        for name in failed:
            self.console.print(f"  [red]- {name}[/red]")

    def print_packages(self, report: MatrixReport) -> None:
        if not report.packages:
            return
        table = Table(title="Packages", header_style="bold cyan")
        table.add_column("Platform", style="cyan")
        table.add_column("Artifact")
        table.add_column("SHA-256", style="dim")
        for platform_id in sorted(report.packages):
            package = report.packages[platform_id]
            table.add_row(platform_id, str(package.artifact_path), package.content_hash)
        self.console.print(table)

    def print_dev_environment(self, devenv: DevEnvironment) -> None:
        table = Table(title=f"Dev environment ({devenv.platform_id})", header_style="bold cyan")
        table.add_column("Variable", style="cyan")
        table.add_column("Value")
        for name in sorted(devenv.env):
            table.add_row(name, devenv.env[name])
        self.console.print(table)
        self.console.print(f"[bold]Tools:[/bold] {', '.join(devenv.tools) or '-'}")
