"""Declarative project specification.

Loaded from ``forgematrix.toml`` or ``pyproject.toml [tool.forgematrix]``.
This is the single declarative input from which every stage and the dev
environment are derived.
"""

from __future__ import annotations

import shlex
import string
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

DEFAULT_PROJECT_FILE = Path("forgematrix.toml")

PLACEHOLDERS: frozenset[str] = frozenset({
    "source",
    "out_dir",
    "cache_dir",
    "target",
    "platform",
    "dependency",
    "name",
})


class ProjectSpecError(ValueError):
    """Raised when the project specification is missing or invalid."""


class ToolchainCommands(BaseModel):
    """Command templates for each stage.

    Templates are split with :func:`shlex.split` first, then each token is
    formatted, so substituted paths containing spaces stay one argument.
    Placeholders: ``{source}``, ``{out_dir}``, ``{cache_dir}``, ``{target}``,
    ``{platform}``, ``{dependency}``, ``{name}``.
    """

    model_config = ConfigDict(frozen=True)

    dependencies: str
    lint: str
    test: str
    package: str
    run: str = ""
    dev_tools: tuple[str, ...] = ()

    @field_validator("dependencies", "lint", "test", "package", "run")
    @classmethod
    def _known_placeholders(cls, value: str) -> str:
        formatter = string.Formatter()
        try:
            fields = {
                field
                for token in shlex.split(value)
                for _, field, _, _ in formatter.parse(token)
                if field is not None
            }
        except ValueError as exc:
            raise ValueError(f"malformed command template {value!r}: {exc}") from exc
        unknown = sorted(fields - PLACEHOLDERS)
        if unknown:
            names = ", ".join(repr(field) for field in unknown)
            known = ", ".join(sorted(PLACEHOLDERS))
            raise ValueError(
                f"unknown placeholder(s) {names} in {value!r}; expected one of {known}"
            )
        return value

    def render(self, template: str, **values: str) -> list[str]:
        """Split *template* and substitute placeholders token by token."""
        try:
            return [token.format(**values) for token in shlex.split(template)]
        except KeyError as exc:
            raise ProjectSpecError(
                f"Unknown placeholder {exc} in command template {template!r}"
            ) from exc


class ProjectSpec(BaseModel):
    """Project-level declaration: platforms, lock state, libraries, toolchain."""

    model_config = ConfigDict(frozen=True)

    name: str
    platforms: tuple[str, ...] = ()
    lock_files: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    libraries: tuple[str, ...] = ()
    platform_libraries: dict[str, tuple[str, ...]] = {}
    ignore: tuple[str, ...] = ()
    toolchain: ToolchainCommands

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be empty")
        return value

    def libraries_for(self, os_name: str, extra: tuple[str, ...] = ()) -> tuple[str, ...]:
        """Project libraries + *extra* + per-OS libraries, de-duplicated in order."""
        combined = [*self.libraries, *extra, *self.platform_libraries.get(os_name, ())]
        return tuple(dict.fromkeys(combined))


def load_project(path: Path | str = DEFAULT_PROJECT_FILE) -> ProjectSpec:
    """Load and validate a project specification file.

    ``pyproject.toml`` is read from its ``[tool.forgematrix]`` table; any
    other file is read as a top-level forgematrix table.
    """
    path = Path(path)
    try:
        with path.open("rb") as fh:
            document = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ProjectSpecError(f"Project file not found: {path}") from exc
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ProjectSpecError(f"Cannot read project file {path}: {exc}") from exc

    table: dict[str, Any] = document
    if path.name == "pyproject.toml":
        table = document.get("tool", {}).get("forgematrix")
        if table is None:
            raise ProjectSpecError(f"{path} has no [tool.forgematrix] table")
        table = {"name": document.get("project", {}).get("name", ""), **table}

    try:
        return ProjectSpec.model_validate(table)
    except ValidationError as exc:
        raise ProjectSpecError(f"Invalid project file {path}:\n{exc}") from exc
