"""forgematrix CLI — Typer-based command-line interface.

Provides the ``forgematrix`` command with subcommands for building the
dependency cache, running checks, packaging, printing the dev environment
and running the packaged program.

All output uses Rich for formatted terminal display.
"""
