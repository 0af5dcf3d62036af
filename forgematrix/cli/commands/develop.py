"""``forgematrix develop`` — print the development environment overlay.

The overlay is the one the build stages use, so a shell that evaluates it
sees the same toolchain target and external-library paths as CI::

    eval "$(forgematrix develop)"
"""

from __future__ import annotations

import json

import typer
from rich.markup import escape

from forgematrix.cli.commands._shared import EXIT_CONFIG, console, load_settings, project_file
from forgematrix.core.devenv import compose_dev_environment
from forgematrix.core.environment import detect_host_platform
from forgematrix.core.resolver import UnsupportedPlatformError
from forgematrix.models.project import ProjectSpecError, load_project
from forgematrix.monitor.renderer import CheckRenderer


def develop_cmd(
    ctx: typer.Context,
    as_json: bool = typer.Option(
        False, "--json", help="Print the environment as JSON."
    ),
    describe: bool = typer.Option(
        False, "--describe", help="Show a table of variables and tools instead."
    ),
) -> None:
    """Print the dev environment for the host platform."""
    settings = load_settings()
    try:
        project = load_project(project_file(ctx))
        devenv = compose_dev_environment(project, detect_host_platform(settings), settings)
    except (ProjectSpecError, UnsupportedPlatformError) as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=EXIT_CONFIG)

    if describe:
        CheckRenderer(console=console).print_dev_environment(devenv)
    elif as_json:
        typer.echo(json.dumps(devenv.model_dump(mode="json"), indent=2, sort_keys=True))
    else:
        typer.echo(devenv.shell_exports())
