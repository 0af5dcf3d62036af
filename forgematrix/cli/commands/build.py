"""``forgematrix build`` — compile and cache third-party dependencies.

Runs only the dependency cache stage for each requested platform.  A
second invocation with an unchanged lock state is a pure cache hit.
"""

from __future__ import annotations

import typer

from forgematrix.cli.commands._shared import run_stages
from forgematrix.models.results import PipelineStage


def build_cmd(
    ctx: typer.Context,
    platform: list[str] = typer.Option(
        None,
        "--platform",
        "-p",
        help="Target platform (e.g. x86_64-linux). Repeatable. Defaults to the declared platforms.",
    ),
) -> None:
    """Populate the dependency cache for each platform."""
    run_stages(ctx, [PipelineStage.CACHE], platform or [])
