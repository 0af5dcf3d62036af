"""Dev Environment Composer.

Pure function of the declared libraries and the host platform.  It runs
no build stage and caches nothing; the overlay comes from the same
``library_environment`` the build contexts use.
"""

from __future__ import annotations

from forgematrix.config import MatrixSettings
from forgematrix.core.environment import library_environment
from forgematrix.core.resolver import UnsupportedPlatformError
from forgematrix.models.platforms import PLATFORM_TOOLCHAINS, Platform
from forgematrix.models.project import ProjectSpec
from forgematrix.models.results import DevEnvironment


def compose_dev_environment(
    project: ProjectSpec,
    host: Platform,
    settings: MatrixSettings | None = None,
) -> DevEnvironment:
    """Assemble the interactive environment for *host*."""
    settings = settings or MatrixSettings()
    toolchain = PLATFORM_TOOLCHAINS.get(host.identifier)
    if toolchain is None:
        raise UnsupportedPlatformError(
            f"No toolchain mapping for host platform {host.identifier!r}"
        )
    libraries = project.libraries_for(host.os, toolchain.extra_libraries)
    env = library_environment(toolchain, libraries, settings.library_search_path)
    tools = tuple(dict.fromkeys([*project.toolchain.dev_tools, *libraries]))
    return DevEnvironment(platform_id=host.identifier, tools=tools, env=env)
