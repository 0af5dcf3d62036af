"""``forgematrix run [ARGS]...`` — package for the host and run it.

The host package is unpacked to a temporary directory and the project's
``run`` template is executed with ``{out_dir}`` pointing at it, under the
same environment overlay the build stages used.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from pathlib import Path

import typer
from rich.markup import escape

from forgematrix.cli.commands._shared import (
    EXIT_CONFIG,
    build_orchestrator,
    console,
    project_file,
    run_stages,
)
from forgematrix.core.archive import unpack_archive
from forgematrix.core.resolver import UnsupportedPlatformError
from forgematrix.models.results import PipelineStage


def run_cmd(
    ctx: typer.Context,
    args: list[str] = typer.Argument(
        None, help="Arguments passed to the program (use -- before flags)."
    ),
) -> None:
    """Build the host package and execute it."""
    orchestrator = build_orchestrator(ctx)
    project = orchestrator.project
    if not project.toolchain.run:
        console.print("[bold red]Error:[/bold red] toolchain.run is not set in the project file.")
        raise typer.Exit(code=EXIT_CONFIG)

    try:
        (context,) = orchestrator.resolver.resolve([])
    except UnsupportedPlatformError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_CONFIG)
    report = run_stages(
        ctx, [PipelineStage.CACHE, PipelineStage.PACKAGE], [context.platform_id]
    )
    package = report.packages[context.platform_id]

    with tempfile.TemporaryDirectory(prefix="forgematrix-run-") as scratch:
        out_dir = unpack_archive(package.artifact_path.read_bytes(), Path(scratch))
        argv = project.toolchain.render(
            project.toolchain.run,
            source=str(project_file(ctx).resolve().parent),
            out_dir=str(out_dir),
            cache_dir="",
            target=context.toolchain.target_triple,
            platform=context.platform_id,
            dependency="",
            name=project.name,
        )
        env = {**os.environ, **context.env_overrides}
        try:
            completed = subprocess.run([*argv, *(args or [])], env=env)
        except FileNotFoundError:
            console.print(f"[bold red]Error:[/bold red] executable not found: {argv[0]}")
            raise typer.Exit(code=127)
    raise typer.Exit(code=completed.returncode)
