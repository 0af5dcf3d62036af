"""Main Typer application — imports and registers all CLI commands.

Entry point: ``forgematrix`` (configured via pyproject.toml scripts).

Commands: build, check, package, develop, run.
"""

from __future__ import annotations

from pathlib import Path

import typer

from forgematrix.cli.commands._shared import load_settings
from forgematrix.cli.commands.build import build_cmd
from forgematrix.cli.commands.check import check_cmd
from forgematrix.cli.commands.develop import develop_cmd
from forgematrix.cli.commands.package import package_cmd
from forgematrix.cli.commands.run import run_cmd
from forgematrix.config import configure_logging

app = typer.Typer(
    name="forgematrix",
    help="forgematrix: reproducible build-matrix orchestrator.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    project: Path = typer.Option(
        Path("forgematrix.toml"),
        "--project",
        "-f",
        help="Project file (forgematrix.toml or pyproject.toml).",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Log at DEBUG level, including tool command lines."
    ),
) -> None:
    """Configure logging and remember the project file for subcommands."""
    configure_logging("DEBUG" if verbose else load_settings().log_level)
    ctx.obj = {"project_file": project}


# Register subcommands
app.command(name="build", help="Compile and cache third-party dependencies.")(build_cmd)
app.command(name="check", help="Run cache, lint, test and package checks.")(check_cmd)
app.command(name="package", help="Build installable packages.")(package_cmd)
app.command(name="develop", help="Print the development environment overlay.")(develop_cmd)
app.command(name="run", help="Package for the host and run the program.")(run_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
