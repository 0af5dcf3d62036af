"""Dependency Cache Builder.

Compiles only the declared third-party dependencies for a BuildContext and
stores the result under a deterministic CacheKey.  At most one compilation
happens per distinct key within a run: concurrent requests for the same
key are coalesced through a map of futures, one per key.  The first
requester fills the entry; the others wait on the same future.  The map
is cleared by ``reset`` at the start of every run, so a new run sees
fresh store state and retries keys that failed before.
"""

from __future__ import annotations

import logging
import tempfile
import threading
from concurrent.futures import Future
from pathlib import Path

from forgematrix.core.archive import pack_directory
from forgematrix.core.cache_store import CacheStore
from forgematrix.core.hasher import compute_cache_key_digest, compute_libraries_hash
from forgematrix.core.toolchain import ToolInvocation, ToolRunner
from forgematrix.models.cache import CacheArtifact, CacheKey
from forgematrix.models.platforms import BuildContext
from forgematrix.models.project import ProjectSpec
from forgematrix.models.results import PipelineStage, StageResult, StageStatus
from forgematrix.models.snapshot import SourceSnapshot

logger = logging.getLogger(__name__)


class DependencyBuildError(RuntimeError):
    """Raised when a declared dependency fails to compile.

    Fatal for every stage that depends on the affected CacheKey.
    """

    def __init__(self, dependency: str, output: str, platform_id: str = "") -> None:
        self.dependency = dependency
        self.output = output
        self.platform_id = platform_id
        where = f" for {platform_id}" if platform_id else ""
        super().__init__(f"Dependency {dependency!r} failed to compile{where}")


def compute_cache_key(
    lock_hash: str, platform_id: str, libraries: tuple[str, ...] | list[str]
) -> CacheKey:
    """Derive the CacheKey for (lock state, platform, external libraries)."""
    libraries_hash = compute_libraries_hash(libraries)
    return CacheKey(
        digest=compute_cache_key_digest(lock_hash, platform_id, libraries_hash),
        lock_hash=lock_hash,
        platform_id=platform_id,
        libraries_hash=libraries_hash,
    )


class DependencyCacheBuilder:
    """Builds or reuses compiled-dependency artifacts.

    Parameters
    ----------
    project:
        Supplies lock files, dependency names and the ``dependencies``
        command template.
    store:
        The cache store shared by every concurrent pipeline.
    runner:
        Toolchain backend used for compilation.
    """

    def __init__(
        self, project: ProjectSpec, store: CacheStore, runner: ToolRunner
    ) -> None:
        self._project = project
        self._store = store
        self._runner = runner
        self._registry_lock = threading.Lock()
        # key digest -> (artifact, was a store hit)
        self._inflight: dict[str, Future[tuple[CacheArtifact, bool]]] = {}
        self._counter_lock = threading.Lock()
        self.compile_count = 0

    def key_for(self, snapshot: SourceSnapshot, context: BuildContext) -> CacheKey:
        lock_hash = snapshot.lock_state_hash(
            list(self._project.lock_files), list(self._project.dependencies)
        )
        return compute_cache_key(lock_hash, context.platform_id, context.libraries)

    def reset(self) -> None:
        """Start a new run: forget every coalesced key, including failed ones.

        The next ``ensure`` for each key consults the store again.
        """
        with self._registry_lock:
            self._inflight = {}

    # ------------------------------------------------------------------
    # Ensure
    # ------------------------------------------------------------------

    def ensure(self, snapshot: SourceSnapshot, context: BuildContext) -> CacheArtifact:
        """Return the artifact for this context, compiling only on a miss.

        Raises ``DependencyBuildError`` if compilation fails; concurrent and
        later requests for the same key before the next ``reset`` see the
        same error without recompiling.
        """
        artifact, _ = self._ensure(snapshot, context)
        return artifact

    def ensure_result(
        self, snapshot: SourceSnapshot, context: BuildContext
    ) -> tuple[CacheArtifact, StageResult]:
        """``ensure`` plus a passed cache StageResult describing the outcome."""
        artifact, hit = self._ensure(snapshot, context)
        log = (
            f"cache hit {artifact.key}\n" if hit else f"compiled dependencies into {artifact.key}\n"
        )
        return artifact, StageResult(
            stage=PipelineStage.CACHE,
            platform_id=context.platform_id,
            status=StageStatus.PASSED,
            log=log,
            artifact_ref=artifact.key,
            details={"cache_hit": hit, "size_bytes": artifact.size_bytes},
        )

    def _ensure(
        self, snapshot: SourceSnapshot, context: BuildContext
    ) -> tuple[CacheArtifact, bool]:
        key = self.key_for(snapshot, context)
        with self._registry_lock:
            future = self._inflight.get(key.digest)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key.digest] = future

        if not owner:
            logger.debug("[%s] waiting on cache key %s", context.platform_id, key.digest[:12])
            return future.result()

        try:
            outcome = self._fill(key, snapshot, context)
        except BaseException as exc:
            future.set_exception(exc)
            raise
        future.set_result(outcome)
        return outcome

    def _fill(
        self, key: CacheKey, snapshot: SourceSnapshot, context: BuildContext
    ) -> tuple[CacheArtifact, bool]:
        if self._store.exists(key.digest):
            logger.info("[%s] cache hit %s", context.platform_id, key.digest[:12])
            return self._store.read(key.digest), True

        logger.info("[%s] cache miss %s; compiling dependencies", context.platform_id, key.digest[:12])
        with self._counter_lock:
            self.compile_count += 1
        blob = self._compile(snapshot, context)
        return self._store.atomic_write(CacheArtifact(key=key.digest, blob=blob)), False

    # ------------------------------------------------------------------
    # Compile
    # ------------------------------------------------------------------

    def _compile(self, snapshot: SourceSnapshot, context: BuildContext) -> bytes:
        """Compile each declared dependency, in sorted order, into one tree."""
        toolchain = self._project.toolchain
        with tempfile.TemporaryDirectory(prefix="forgematrix-deps-") as scratch:
            out_dir = Path(scratch) / "deps"
            out_dir.mkdir()
            for dependency in sorted(set(self._project.dependencies)):
                argv = toolchain.render(
                    toolchain.dependencies,
                    source=str(snapshot.root),
                    out_dir=str(out_dir),
                    cache_dir=str(out_dir),
                    target=context.toolchain.target_triple,
                    platform=context.platform_id,
                    dependency=dependency,
                    name=self._project.name,
                )
                result = self._runner.run(ToolInvocation(
                    stage=PipelineStage.CACHE,
                    platform_id=context.platform_id,
                    argv=tuple(argv),
                    cwd=snapshot.root,
                    env=context.env_overrides,
                    out_dir=out_dir,
                    dependency=dependency,
                ))
                if not result.ok:
                    logger.error(
                        "[%s] dependency %s failed (exit %d)",
                        context.platform_id,
                        dependency,
                        result.exit_code,
                    )
                    raise DependencyBuildError(dependency, result.log, context.platform_id)
            return pack_directory(out_dir)
