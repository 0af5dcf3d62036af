"""Platform and build-context models.

The platform -> toolchain mapping is an explicit table.  Nothing else in
the code branches on operating system or architecture names; consumers
look up ``PLATFORM_TOOLCHAINS`` instead.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class Platform(BaseModel):
    """An (operating system, architecture) pair identifying a build target."""

    model_config = ConfigDict(frozen=True)

    os: str  # "linux", "darwin"
    arch: str  # "x86_64", "aarch64"

    @property
    def identifier(self) -> str:
        """Canonical ``<arch>-<os>`` identifier, e.g. ``x86_64-linux``."""
        return f"{self.arch}-{self.os}"

    @classmethod
    def parse(cls, identifier: str) -> Platform:
        """Parse an ``<arch>-<os>`` identifier."""
        arch, sep, os_name = identifier.strip().partition("-")
        if not sep or not arch or not os_name:
            raise ValueError(
                f"Platform identifier must look like '<arch>-<os>', got {identifier!r}"
            )
        return cls(os=os_name, arch=arch)

    def __str__(self) -> str:
        return self.identifier


class PlatformToolchain(BaseModel):
    """Known toolchain mapping for one platform."""

    model_config = ConfigDict(frozen=True)

    platform: Platform
    target_triple: str
    library_path_var: str
    extra_libraries: tuple[str, ...] = ()


def _entry(
    arch: str,
    os_name: str,
    triple: str,
    library_path_var: str,
    extra_libraries: tuple[str, ...] = (),
) -> tuple[str, PlatformToolchain]:
    platform = Platform(os=os_name, arch=arch)
    return platform.identifier, PlatformToolchain(
        platform=platform,
        target_triple=triple,
        library_path_var=library_path_var,
        extra_libraries=extra_libraries,
    )


PLATFORM_TOOLCHAINS: dict[str, PlatformToolchain] = dict([
    _entry("x86_64", "linux", "x86_64-unknown-linux-gnu", "LD_LIBRARY_PATH"),
    _entry("aarch64", "linux", "aarch64-unknown-linux-gnu", "LD_LIBRARY_PATH"),
    _entry("x86_64", "darwin", "x86_64-apple-darwin", "DYLD_LIBRARY_PATH", ("libiconv",)),
    _entry("aarch64", "darwin", "aarch64-apple-darwin", "DYLD_LIBRARY_PATH", ("libiconv",)),
])

# Aliases reported by platform.system() / platform.machine().
OS_ALIASES: dict[str, str] = {
    "linux": "linux",
    "darwin": "darwin",
    "macos": "darwin",
}

ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
}


class BuildContext(BaseModel):
    """Everything a pipeline needs to know about one resolved target.

    One per resolved platform, immutable, owned by that platform's run.
    """

    model_config = ConfigDict(frozen=True)

    platform: Platform
    toolchain: PlatformToolchain
    libraries: tuple[str, ...] = ()
    env_overrides: dict[str, str] = {}

    @property
    def platform_id(self) -> str:
        return self.platform.identifier
