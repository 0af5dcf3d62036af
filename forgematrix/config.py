"""Runtime configuration — env-driven via pydantic-settings.

Reads from a .env file and FORGEMATRIX_* environment variables.  The
platform and library-path overrides here are consumed identically by the
build stages and the dev environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.logging import RichHandler

LINT_SEVERITIES = ("note", "help", "warning", "error")


class MatrixSettings(BaseSettings):
    """Runtime settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export FORGEMATRIX_LOG_LEVEL=DEBUG
        export FORGEMATRIX_PLATFORMS=x86_64-linux,aarch64-darwin
        export FORGEMATRIX_LIBRARY_PATH=/opt/libs:/usr/local/libs

    Or via .env file::

        FORGEMATRIX_CACHE_STORE_PATH=/var/cache/forgematrix
        FORGEMATRIX_WARNINGS_AS_ERRORS=false
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FORGEMATRIX_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"

    # Storage paths
    cache_store_path: Path = Path(".forgematrix/cache")
    dist_path: Path = Path(".forgematrix/dist")

    # Scheduling
    max_workers: int = 4
    tool_timeout_seconds: int = 3600

    # Lint policy
    warnings_as_errors: bool = True
    lint_severity_threshold: str = "error"

    # Target matrix overrides
    host_os: str = ""
    host_arch: str = ""
    platforms: str = ""  # comma separated

    # External-library search path (os.pathsep separated)
    library_path: str = ""

    @field_validator("lint_severity_threshold")
    @classmethod
    def _known_severity(cls, value: str) -> str:
        severity = value.strip().lower()
        if severity not in LINT_SEVERITIES:
            raise ValueError(f"must be one of {', '.join(LINT_SEVERITIES)}, not {value!r}")
        return severity

    @property
    def platform_overrides(self) -> list[str]:
        """Platform identifiers from FORGEMATRIX_PLATFORMS, blanks dropped."""
        return [p.strip() for p in self.platforms.split(",") if p.strip()]

    @property
    def library_search_path(self) -> list[Path]:
        """Library search roots from FORGEMATRIX_LIBRARY_PATH, in order."""
        return [Path(p) for p in self.library_path.split(os.pathsep) if p]


def configure_logging(level: str = "INFO", console: Console | None = None) -> None:
    """Install a single Rich log handler on the root logger."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console or Console(stderr=True), show_path=False)],
        force=True,
    )
