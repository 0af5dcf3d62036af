"""Target Matrix Resolver — platform identifiers -> BuildContexts."""

from __future__ import annotations

import logging

from forgematrix.config import MatrixSettings
from forgematrix.core.environment import detect_host_platform, library_environment
from forgematrix.models.platforms import PLATFORM_TOOLCHAINS, BuildContext, Platform
from forgematrix.models.project import ProjectSpec

logger = logging.getLogger(__name__)


class UnsupportedPlatformError(ValueError):
    """Raised when a requested platform has no known toolchain mapping."""


class TargetMatrixResolver:
    """Expands a declared platform list into concrete build contexts.

    Parameters
    ----------
    project:
        The project specification (libraries, per-OS libraries).
    settings:
        Runtime settings (host overrides, library search path).
    """

    def __init__(
        self, project: ProjectSpec, settings: MatrixSettings | None = None
    ) -> None:
        self._project = project
        self._settings = settings or MatrixSettings()

    def host_platform(self) -> Platform:
        return detect_host_platform(self._settings)

    def requested_platforms(self, cli_platforms: list[str] | None = None) -> list[str]:
        """Pick the platform list: CLI > FORGEMATRIX_PLATFORMS > project file."""
        if cli_platforms:
            return list(cli_platforms)
        if self._settings.platform_overrides:
            return self._settings.platform_overrides
        return list(self._project.platforms)

    def resolve(
        self,
        platforms: list[str] | tuple[str, ...],
        host: Platform | None = None,
    ) -> tuple[BuildContext, ...]:
        """Resolve *platforms* (in order, de-duplicated) to BuildContexts.

        An empty list resolves to the host platform only.  Raises
        ``UnsupportedPlatformError`` for any identifier without a toolchain.
        """
        if not platforms:
            host = host or self.host_platform()
            platforms = [host.identifier]
            logger.info("No platforms requested; using host %s", host.identifier)

        contexts: list[BuildContext] = []
        for identifier in dict.fromkeys(p.strip() for p in platforms):
            contexts.append(self._context_for(identifier))

        logger.info(
            "Resolved target matrix: %s",
            ", ".join(c.platform_id for c in contexts),
        )
        return tuple(contexts)

    def _context_for(self, identifier: str) -> BuildContext:
        toolchain = PLATFORM_TOOLCHAINS.get(identifier)
        if toolchain is None:
            known = ", ".join(sorted(PLATFORM_TOOLCHAINS))
            raise UnsupportedPlatformError(
                f"No toolchain mapping for platform {identifier!r}. Known: {known}"
            )
        libraries = self._project.libraries_for(
            toolchain.platform.os, toolchain.extra_libraries
        )
        env = library_environment(
            toolchain, libraries, self._settings.library_search_path
        )
        return BuildContext(
            platform=toolchain.platform,
            toolchain=toolchain,
            libraries=libraries,
            env_overrides=env,
        )
