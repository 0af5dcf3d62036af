"""``forgematrix check`` — run every check for every declared platform.

The check set is the dependency cache build, lint, test and package
build per platform.  Exit code 0 only if no check failed.
"""

from __future__ import annotations

import typer

from forgematrix.cli.commands._shared import run_stages
from forgematrix.models.results import ALL_STAGES


def check_cmd(
    ctx: typer.Context,
    platform: list[str] = typer.Option(
        None,
        "--platform",
        "-p",
        help="Restrict the matrix to these platforms. Repeatable.",
    ),
) -> None:
    """Run cache, lint, test and package checks across the matrix."""
    run_stages(ctx, ALL_STAGES, platform or [])
