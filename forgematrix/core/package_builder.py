"""Package Builder — own code + cached dependencies -> distributable.

The output directory is packed deterministically, so an unchanged
snapshot and cache artifact reproduce a package with the same content
hash, provided the underlying compiler is itself reproducible.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from forgematrix.core.archive import is_empty_directory, pack_directory, unpack_archive
from forgematrix.core.hasher import sha256_hex
from forgematrix.core.toolchain import ToolInvocation, ToolRunner
from forgematrix.models.cache import CacheArtifact
from forgematrix.models.platforms import BuildContext
from forgematrix.models.project import ProjectSpec
from forgematrix.models.results import Package, PipelineStage
from forgematrix.models.snapshot import SourceSnapshot

logger = logging.getLogger(__name__)


class PackageBuildError(RuntimeError):
    """Raised when the project's own code fails to compile or package."""

    def __init__(self, message: str, output: str = "", platform_id: str = "") -> None:
        self.output = output
        self.platform_id = platform_id
        super().__init__(message)


class PackageBuilder:
    """Compiles the project against a cache artifact into a Package.

    Parameters
    ----------
    project:
        Supplies the ``package`` command template and the project name.
    runner:
        Toolchain backend.
    dist_path:
        Directory that receives ``{name}-{platform}.tar.gz`` artifacts.
    """

    def __init__(self, project: ProjectSpec, runner: ToolRunner, dist_path: Path) -> None:
        self._project = project
        self._runner = runner
        self._dist = Path(dist_path)

    def artifact_path(self, context: BuildContext) -> Path:
        return self._dist / f"{self._project.name}-{context.platform_id}.tar.gz"

    def build(
        self,
        snapshot: SourceSnapshot,
        context: BuildContext,
        artifact: CacheArtifact,
    ) -> tuple[Package, str]:
        """Build and return ``(package, tool_log)``.

        Raises ``PackageBuildError`` on a nonzero exit or empty output.
        """
        toolchain = self._project.toolchain
        with tempfile.TemporaryDirectory(prefix="forgematrix-package-") as scratch:
            cache_dir = unpack_archive(artifact.blob, Path(scratch) / "deps")
            out_dir = Path(scratch) / "out"
            out_dir.mkdir()
            argv = toolchain.render(
                toolchain.package,
                source=str(snapshot.root),
                out_dir=str(out_dir),
                cache_dir=str(cache_dir),
                target=context.toolchain.target_triple,
                platform=context.platform_id,
                dependency="",
                name=self._project.name,
            )
            result = self._runner.run(ToolInvocation(
                stage=PipelineStage.PACKAGE,
                platform_id=context.platform_id,
                argv=tuple(argv),
                cwd=snapshot.root,
                env=context.env_overrides,
                out_dir=out_dir,
            ))
            if not result.ok:
                raise PackageBuildError(
                    f"Package build for {context.platform_id} exited with code {result.exit_code}",
                    result.log,
                    context.platform_id,
                )
            if is_empty_directory(out_dir):
                raise PackageBuildError(
                    f"Package build for {context.platform_id} produced no output",
                    result.log,
                    context.platform_id,
                )
            blob = pack_directory(out_dir)

        path = self._write(self.artifact_path(context), blob)
        package = Package(
            platform_id=context.platform_id,
            artifact_path=path,
            content_hash=sha256_hex(blob),
        )
        logger.info(
            "[%s] packaged %s (sha256 %s)",
            context.platform_id,
            path.name,
            package.content_hash[:12],
        )
        return package, result.log

    @staticmethod
    def _write(path: Path, blob: bytes) -> Path:
        """Write *blob* to *path* via a same-directory temp file + rename."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".partial")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(blob)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return path
