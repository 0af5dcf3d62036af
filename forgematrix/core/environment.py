"""Host detection and the external-library environment overlay.

``library_environment`` is the single place the library search-path
overrides are turned into environment variables.  Both the build stages
(through the resolver) and the dev environment call it, so CI builds and
local development see the same overlay.
"""

from __future__ import annotations

import os
import platform as platform_mod
from pathlib import Path

from forgematrix.config import MatrixSettings
from forgematrix.models.platforms import (
    ARCH_ALIASES,
    OS_ALIASES,
    Platform,
    PlatformToolchain,
)


def detect_host_platform(settings: MatrixSettings | None = None) -> Platform:
    """Return the host platform, honouring FORGEMATRIX_HOST_OS / _ARCH."""
    settings = settings or MatrixSettings()
    raw_os = settings.host_os or platform_mod.system()
    raw_arch = settings.host_arch or platform_mod.machine()
    os_name = OS_ALIASES.get(raw_os.lower(), raw_os.lower())
    arch = ARCH_ALIASES.get(raw_arch.lower(), raw_arch.lower())
    return Platform(os=os_name, arch=arch)


def library_environment(
    toolchain: PlatformToolchain,
    libraries: tuple[str, ...],
    search_path: list[Path],
) -> dict[str, str]:
    """Environment overlay exposing *libraries* for *toolchain*'s platform.

    Pure function of its inputs: for every search root and library the
    conventional ``lib``, ``bin`` and ``lib/pkgconfig`` subdirectories are
    added, in search-path order.
    """
    lib_dirs: list[str] = []
    bin_dirs: list[str] = []
    pkgconfig_dirs: list[str] = []
    for root in search_path:
        for library in libraries:
            prefix = root / library
            lib_dirs.append(str(prefix / "lib"))
            bin_dirs.append(str(prefix / "bin"))
            pkgconfig_dirs.append(str(prefix / "lib" / "pkgconfig"))

    env: dict[str, str] = {
        "FORGEMATRIX_TARGET": toolchain.target_triple,
        "FORGEMATRIX_PLATFORM": toolchain.platform.identifier,
        "FORGEMATRIX_LIBRARIES": " ".join(libraries),
    }
    if lib_dirs:
        env[toolchain.library_path_var] = os.pathsep.join(lib_dirs)
        env["LIBRARY_PATH"] = os.pathsep.join(lib_dirs)
        env["PKG_CONFIG_PATH"] = os.pathsep.join(pkgconfig_dirs)
        env["FORGEMATRIX_BIN_PATH"] = os.pathsep.join(bin_dirs)
    return env
