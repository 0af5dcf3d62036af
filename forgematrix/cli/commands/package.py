"""``forgematrix package`` — build the final installable artifact(s)."""

from __future__ import annotations

import typer

from forgematrix.cli.commands._shared import run_stages
from forgematrix.models.results import PipelineStage


def package_cmd(
    ctx: typer.Context,
    platform: list[str] = typer.Option(
        None,
        "--platform",
        "-p",
        help="Target platform (e.g. aarch64-darwin). Repeatable. Defaults to the declared platforms.",
    ),
) -> None:
    """Build packages, reusing the dependency cache."""
    run_stages(ctx, [PipelineStage.CACHE, PipelineStage.PACKAGE], platform or [])
