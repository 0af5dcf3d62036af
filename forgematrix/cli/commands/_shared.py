"""Helpers shared by the pipeline commands.

Exit codes:
    0 — no check in the aggregated CheckSet failed
    1 — at least one check failed (failing names are printed)
    2 — configuration error (project file, settings, platform, unreadable
        or changed source)
    130 — interrupted or cancelled
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from forgematrix.config import MatrixSettings
from forgematrix.core.orchestrator import MatrixOrchestrator
from forgematrix.core.resolver import UnsupportedPlatformError
from forgematrix.core.snapshot import SnapshotError
from forgematrix.models.project import ProjectSpecError, load_project
from forgematrix.models.results import MatrixReport, PipelineStage
from forgematrix.monitor.renderer import CheckRenderer

logger = logging.getLogger(__name__)

console = Console()

EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def project_file(ctx: typer.Context) -> Path:
    obj = ctx.obj or {}
    return Path(obj.get("project_file", "forgematrix.toml"))


def load_settings() -> MatrixSettings:
    """Read FORGEMATRIX_* settings, or exit 2 on an invalid value."""
    try:
        return MatrixSettings()
    except ValidationError as exc:
        console.print(f"[bold red]Settings error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_CONFIG)


def build_orchestrator(ctx: typer.Context) -> MatrixOrchestrator:
    """Load the project file and construct an orchestrator, or exit 2."""
    settings = load_settings()
    path = project_file(ctx)
    try:
        project = load_project(path)
    except ProjectSpecError as exc:
        console.print(f"[bold red]Project error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_CONFIG)
    return MatrixOrchestrator(project, settings)


def run_stages(
    ctx: typer.Context,
    stages: Sequence[PipelineStage],
    platforms: Sequence[str] | None = None,
) -> MatrixReport:
    """Run *stages*, render the report, and exit nonzero unless all passed."""
    orchestrator = build_orchestrator(ctx)
    root = project_file(ctx).resolve().parent
    renderer = CheckRenderer(console=console)

    try:
        report = orchestrator.run_matrix(root, platforms, stages)
    except (SnapshotError, UnsupportedPlatformError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_CONFIG)
    except KeyboardInterrupt:
        console.print("[bold yellow]Interrupted before the pipelines started.[/bold yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED)

    renderer.print_report(report)
    if PipelineStage.PACKAGE in stages:
        renderer.print_packages(report)

    if report.cancelled:
        console.print("[bold yellow]Run cancelled; unfinished stages were skipped.[/bold yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED)
    if not report.passed:
        renderer.print_failures(report.failed_checks())
        raise typer.Exit(code=EXIT_FAILED)
    return report
