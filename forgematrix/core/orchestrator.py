"""Matrix orchestrator — the central coordinator for forgematrix runs.

Wires the snapshot provider, target resolver, dependency cache builder,
quality gates, package builder and check aggregator into one run:

    snapshot -> resolve -> per platform (concurrently):
        cache -> {lint, test, package} (concurrently) -> CheckSet

Error propagation:
    - DependencyBuildError: cache failed, every downstream stage for that
      platform skipped without invoking its tool.
    - PackageBuildError: only the package check fails.
    - Lint / test failures are already StageResults.
    - Any other exception in a stage: that stage fails; a crashed cache
      stage skips its platform's downstream stages like a failed build.
    - Cancellation (including Ctrl-C): stages that did not finish are
      reported as skipped.
"""

from __future__ import annotations

import logging
import tempfile
import threading
import uuid
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timezone
from pathlib import Path

from forgematrix.config import MatrixSettings
from forgematrix.core.aggregator import CheckAggregator
from forgematrix.core.cache_store import CacheStore, FileCacheStore
from forgematrix.core.dependency_cache import DependencyBuildError, DependencyCacheBuilder
from forgematrix.core.package_builder import PackageBuildError, PackageBuilder
from forgematrix.core.quality_gates import LintPolicy, QualityGateRunner, Severity
from forgematrix.core.resolver import TargetMatrixResolver
from forgematrix.core.snapshot import materialize_snapshot, take_snapshot
from forgematrix.core.toolchain import SubprocessRunner, ToolchainCancelled, ToolRunner
from forgematrix.models.cache import CacheArtifact
from forgematrix.models.platforms import BuildContext
from forgematrix.models.project import ProjectSpec
from forgematrix.models.results import (
    ALL_STAGES,
    CheckSet,
    MatrixReport,
    Package,
    PipelineStage,
    StageResult,
    StageStatus,
)
from forgematrix.models.snapshot import SourceSnapshot

logger = logging.getLogger(__name__)


def _skipped(stage: PipelineStage, platform_id: str, reason: str) -> StageResult:
    return StageResult(
        stage=stage,
        platform_id=platform_id,
        status=StageStatus.SKIPPED,
        log=f"skipped: {reason}\n",
        details={"reason": reason},
    )


class MatrixOrchestrator:
    """Central build-matrix orchestrator.

    Parameters
    ----------
    project:
        The declarative project specification.
    settings:
        Runtime settings.  Uses environment-derived defaults if not provided.
    cache_store:
        Shared cache store.  Defaults to a ``FileCacheStore`` at
        ``settings.cache_store_path``.
    runner:
        Toolchain backend.  Defaults to ``SubprocessRunner``.
    run_id:
        Explicit run identifier; generated if None.
    """

    def __init__(
        self,
        project: ProjectSpec,
        settings: MatrixSettings | None = None,
        *,
        cache_store: CacheStore | None = None,
        runner: ToolRunner | None = None,
        run_id: str | None = None,
    ) -> None:
        self.project = project
        self.settings = settings or MatrixSettings()

        # Core subsystems
        self.cache_store = cache_store or FileCacheStore(self.settings.cache_store_path)
        self.runner = runner or SubprocessRunner(self.settings.tool_timeout_seconds)
        self.resolver = TargetMatrixResolver(project, self.settings)
        self.cache_builder = DependencyCacheBuilder(project, self.cache_store, self.runner)
        self.quality_gates = QualityGateRunner(
            project,
            self.runner,
            LintPolicy(
                warnings_as_errors=self.settings.warnings_as_errors,
                threshold=Severity.parse(self.settings.lint_severity_threshold),
            ),
        )
        self.package_builder = PackageBuilder(project, self.runner, self.settings.dist_path)
        self.aggregator = CheckAggregator()

        # Run state
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        self.run_id = run_id or f"fm-{ts}-{uuid.uuid4().hex[:3]}"
        self._cancelled = threading.Event()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def snapshot(self, root: Path | str = ".") -> SourceSnapshot:
        """Snapshot *root* with the project's extra ignore patterns."""
        return take_snapshot(root, ignore=self.project.ignore)

    def resolve(self, platforms: Sequence[str] | None = None) -> tuple[BuildContext, ...]:
        """Resolve CLI platforms, falling back to env overrides then the project list."""
        return self.resolver.resolve(self.resolver.requested_platforms(list(platforms or [])))

    def run_matrix(
        self,
        root: Path | str = ".",
        platforms: Sequence[str] | None = None,
        stages: Sequence[PipelineStage] = ALL_STAGES,
    ) -> MatrixReport:
        """Snapshot, resolve and run in one call."""
        snapshot = self.snapshot(root)
        contexts = self.resolve(platforms)
        return self.run(snapshot, contexts, stages)

    def run(
        self,
        snapshot: SourceSnapshot,
        contexts: Sequence[BuildContext],
        stages: Sequence[PipelineStage] = ALL_STAGES,
    ) -> MatrixReport:
        """Run the requested *stages* for every context concurrently.

        The cache stage always runs first for each context, since every
        other stage consumes its artifact.  Tools run against a verified,
        read-only copy of *snapshot*; ``SnapshotError`` is raised before any
        tool starts if the tree changed since the snapshot was taken.

        A ``KeyboardInterrupt`` cancels the run instead of propagating: the
        pipelines drain, unfinished stages come back skipped, and the report
        is returned with ``cancelled`` set.
        """
        stages = tuple(dict.fromkeys((PipelineStage.CACHE, *stages)))
        logger.info(
            "Run %s: %d platform(s), stages=%s, snapshot=%s",
            self.run_id,
            len(contexts),
            ",".join(s.value for s in stages),
            snapshot.content_hash[:12],
        )
        self.cache_builder.reset()

        platform_sets: dict[str, CheckSet] = {}
        packages: dict[str, Package] = {}
        workers = max(1, min(self.settings.max_workers, len(contexts)))
        with tempfile.TemporaryDirectory(prefix="forgematrix-src-") as scratch:
            staged = materialize_snapshot(snapshot, Path(scratch) / "src")
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="forgematrix") as pool:
                futures = {
                    context.platform_id: pool.submit(self._run_platform, staged, context, stages)
                    for context in contexts
                }
                try:
                    wait(futures.values())
                except KeyboardInterrupt:
                    # Kill in-flight tools, then let every pipeline finish.
                    self.cancel()
                    wait(futures.values())
                for platform_id, future in futures.items():
                    checkset, package = future.result()
                    platform_sets[platform_id] = checkset
                    if package is not None:
                        packages[platform_id] = package

        combined = self.aggregator.combine(self.run_id, platform_sets.values())
        return MatrixReport(
            run_id=self.run_id,
            snapshot_hash=snapshot.content_hash,
            platforms=platform_sets,
            packages=packages,
            checks=combined,
            cancelled=self.cancelled,
        )

    def cancel(self) -> None:
        """Abort the run: stop scheduling stages and kill in-flight tools."""
        logger.warning("Cancelling run %s", self.run_id)
        self._cancelled.set()
        self.runner.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    # ------------------------------------------------------------------
    # Per-platform pipeline
    # ------------------------------------------------------------------

    def _run_platform(
        self,
        snapshot: SourceSnapshot,
        context: BuildContext,
        stages: tuple[PipelineStage, ...],
    ) -> tuple[CheckSet, Package | None]:
        platform_id = context.platform_id
        downstream = [s for s in stages if s != PipelineStage.CACHE]
        results: list[StageResult] = []

        cache_result, artifact = self._run_cache(snapshot, context)
        results.append(cache_result)

        package: Package | None = None
        if artifact is None:
            reason = (
                "dependency build failed"
                if cache_result.status == StageStatus.FAILED
                else "run cancelled"
            )
            results.extend(_skipped(stage, platform_id, reason) for stage in downstream)
        elif downstream:
            with ThreadPoolExecutor(
                max_workers=len(downstream),
                thread_name_prefix=f"forgematrix-{platform_id}",
            ) as pool:
                futures = {
                    stage: pool.submit(self._run_downstream, stage, snapshot, context, artifact)
                    for stage in downstream
                }
                for stage in downstream:
                    result, produced = futures[stage].result()
                    results.append(result)
                    if produced is not None:
                        package = produced

        return self.aggregator.aggregate(platform_id, results), package

    def _run_cache(
        self, snapshot: SourceSnapshot, context: BuildContext
    ) -> tuple[StageResult, CacheArtifact | None]:
        platform_id = context.platform_id
        if self.cancelled:
            return _skipped(PipelineStage.CACHE, platform_id, "run cancelled"), None
        try:
            artifact, result = self.cache_builder.ensure_result(snapshot, context)
        except DependencyBuildError as exc:
            logger.error("[%s] %s", platform_id, exc)
            return StageResult(
                stage=PipelineStage.CACHE,
                platform_id=platform_id,
                status=StageStatus.FAILED,
                log=exc.output,
                details={"reason": str(exc), "dependency": exc.dependency},
            ), None
        except ToolchainCancelled:
            return _skipped(PipelineStage.CACHE, platform_id, "run cancelled"), None
        except Exception as exc:
            logger.exception("[%s] cache stage crashed", platform_id)
            return StageResult(
                stage=PipelineStage.CACHE,
                platform_id=platform_id,
                status=StageStatus.FAILED,
                log=f"{type(exc).__name__}: {exc}\n",
                details={"reason": str(exc)},
            ), None
        return result, artifact

    def _run_downstream(
        self,
        stage: PipelineStage,
        snapshot: SourceSnapshot,
        context: BuildContext,
        artifact: CacheArtifact,
    ) -> tuple[StageResult, Package | None]:
        platform_id = context.platform_id
        if self.cancelled:
            return _skipped(stage, platform_id, "run cancelled"), None
        try:
            if stage == PipelineStage.LINT:
                return self.quality_gates.run_lint(snapshot, context, artifact), None
            if stage == PipelineStage.TEST:
                return self.quality_gates.run_test(snapshot, context, artifact), None
            return self._run_package(snapshot, context, artifact)
        except ToolchainCancelled:
            return _skipped(stage, platform_id, "run cancelled"), None
        except Exception as exc:
            logger.exception("[%s] %s stage crashed", platform_id, stage.value)
            return StageResult(
                stage=stage,
                platform_id=platform_id,
                status=StageStatus.FAILED,
                log=f"{type(exc).__name__}: {exc}\n",
                details={"reason": str(exc)},
            ), None

    def _run_package(
        self,
        snapshot: SourceSnapshot,
        context: BuildContext,
        artifact: CacheArtifact,
    ) -> tuple[StageResult, Package | None]:
        platform_id = context.platform_id
        try:
            package, log = self.package_builder.build(snapshot, context, artifact)
        except PackageBuildError as exc:
            logger.error("[%s] %s", platform_id, exc)
            return StageResult(
                stage=PipelineStage.PACKAGE,
                platform_id=platform_id,
                status=StageStatus.FAILED,
                log=exc.output,
                details={"reason": str(exc)},
            ), None
        return StageResult(
            stage=PipelineStage.PACKAGE,
            platform_id=platform_id,
            status=StageStatus.PASSED,
            log=log,
            artifact_ref=str(package.artifact_path),
            details={"content_hash": package.content_hash},
        ), package
