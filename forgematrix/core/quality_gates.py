"""Quality Gate Runner — lint and test against the dependency cache.

The two sub-stages are independent: each unpacks its own private copy of
the CacheArtifact, runs its tool, and turns the outcome into a
StageResult.  A failure in one never stops the other.  ``LintFailure``
and ``TestFailure`` are raised by the evaluators and recovered here into
failed results; they do not escape ``run_lint`` / ``run_test``.
"""

from __future__ import annotations

import logging
import re
import tempfile
from enum import IntEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from forgematrix.core.archive import unpack_archive
from forgematrix.core.toolchain import ToolInvocation, ToolResult, ToolRunner
from forgematrix.models.cache import CacheArtifact
from forgematrix.models.platforms import BuildContext
from forgematrix.models.project import ProjectSpec
from forgematrix.models.results import (
    PipelineStage,
    StageResult,
    StageStatus,
    TestCounts,
)
from forgematrix.models.snapshot import SourceSnapshot

logger = logging.getLogger(__name__)

_DIAGNOSTIC_RE = re.compile(r"^\s*(error|warning|note|help)(\[[^\]]*\])?:", re.MULTILINE)
_PASSED_RE = re.compile(r"\b(\d+) passed\b")
_FAILED_RE = re.compile(r"\b(\d+) failed\b")


class LintFailure(RuntimeError):
    """Lint produced diagnostics at or above the threshold, or exited nonzero."""

    def __init__(self, message: str, diagnostics: list[str] | None = None) -> None:
        self.diagnostics = diagnostics or []
        super().__init__(message)


class TestFailure(RuntimeError):
    """The test suite reported failing tests or exited nonzero."""

    __test__ = False

    def __init__(self, message: str, counts: TestCounts) -> None:
        self.counts = counts
        super().__init__(message)


class Severity(IntEnum):
    NOTE = 0
    HELP = 1
    WARNING = 2
    ERROR = 3

    @classmethod
    def parse(cls, name: str) -> Severity:
        try:
            return cls[name.strip().upper()]
        except KeyError as exc:
            raise ValueError(f"Unknown lint severity {name!r}") from exc


class LintPolicy(BaseModel):
    """Which diagnostics fail the lint gate."""

    model_config = ConfigDict(frozen=True)

    warnings_as_errors: bool = True
    threshold: Severity = Severity.ERROR

    @property
    def effective_threshold(self) -> Severity:
        if self.warnings_as_errors:
            return min(self.threshold, Severity.WARNING)
        return self.threshold


def parse_diagnostics(log: str) -> list[tuple[Severity, str]]:
    """Extract (severity, line) pairs from rustc/clippy-style output."""
    lines = log.splitlines()
    found: list[tuple[Severity, str]] = []
    for line in lines:
        match = _DIAGNOSTIC_RE.match(line)
        if match:
            found.append((Severity.parse(match.group(1)), line.strip()))
    return found


def parse_test_counts(log: str) -> TestCounts:
    """Sum every ``N passed`` / ``N failed`` occurrence in *log*.

    Covers ``cargo test`` (one summary per test binary), nextest and
    pytest summaries.
    """
    return TestCounts(
        passed=sum(int(n) for n in _PASSED_RE.findall(log)),
        failed=sum(int(n) for n in _FAILED_RE.findall(log)),
    )


def evaluate_lint(result: ToolResult, policy: LintPolicy) -> list[str]:
    """Return blocking diagnostics, raising ``LintFailure`` on failure."""
    threshold = policy.effective_threshold
    blocking = [
        line for severity, line in parse_diagnostics(result.log) if severity >= threshold
    ]
    if blocking:
        raise LintFailure(
            f"{len(blocking)} diagnostic(s) at or above {threshold.name.lower()}",
            blocking,
        )
    if not result.ok:
        raise LintFailure(f"Linter exited with code {result.exit_code}")
    return blocking


def evaluate_tests(result: ToolResult) -> TestCounts:
    """Return test counts, raising ``TestFailure`` on failure."""
    counts = parse_test_counts(result.log)
    if counts.failed:
        raise TestFailure(f"{counts.failed} of {counts.total} test(s) failed", counts)
    if not result.ok:
        raise TestFailure(f"Test runner exited with code {result.exit_code}", counts)
    return counts


class QualityGateRunner:
    """Runs lint and test for one platform against its cache artifact.

    Parameters
    ----------
    project:
        Supplies the ``lint`` and ``test`` command templates.
    runner:
        Toolchain backend.
    policy:
        Lint severity policy (warnings-as-errors on by default).
    """

    def __init__(
        self,
        project: ProjectSpec,
        runner: ToolRunner,
        policy: LintPolicy | None = None,
    ) -> None:
        self._project = project
        self._runner = runner
        self.policy = policy or LintPolicy()

    # ------------------------------------------------------------------
    # Sub-stages
    # ------------------------------------------------------------------

    def run_lint(
        self, snapshot: SourceSnapshot, context: BuildContext, artifact: CacheArtifact
    ) -> StageResult:
        result = self._invoke(PipelineStage.LINT, self._project.toolchain.lint, snapshot, context, artifact)
        try:
            evaluate_lint(result, self.policy)
        except LintFailure as exc:
            logger.error("[%s] lint failed: %s", context.platform_id, exc)
            return StageResult(
                stage=PipelineStage.LINT,
                platform_id=context.platform_id,
                status=StageStatus.FAILED,
                log=result.log,
                details={"reason": str(exc), "diagnostics": exc.diagnostics},
            )
        logger.info("[%s] lint passed", context.platform_id)
        return StageResult(
            stage=PipelineStage.LINT,
            platform_id=context.platform_id,
            status=StageStatus.PASSED,
            log=result.log,
        )

    def run_test(
        self, snapshot: SourceSnapshot, context: BuildContext, artifact: CacheArtifact
    ) -> StageResult:
        result = self._invoke(PipelineStage.TEST, self._project.toolchain.test, snapshot, context, artifact)
        try:
            counts = evaluate_tests(result)
        except TestFailure as exc:
            logger.error("[%s] tests failed: %s", context.platform_id, exc)
            return StageResult(
                stage=PipelineStage.TEST,
                platform_id=context.platform_id,
                status=StageStatus.FAILED,
                log=result.log,
                test_counts=exc.counts,
                details={"reason": str(exc)},
            )
        logger.info(
            "[%s] tests passed (%d passed)", context.platform_id, counts.passed
        )
        return StageResult(
            stage=PipelineStage.TEST,
            platform_id=context.platform_id,
            status=StageStatus.PASSED,
            log=result.log,
            test_counts=counts,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _invoke(
        self,
        stage: PipelineStage,
        template: str,
        snapshot: SourceSnapshot,
        context: BuildContext,
        artifact: CacheArtifact,
    ) -> ToolResult:
        """Run *template* with a private, unpacked copy of the cache."""
        toolchain = self._project.toolchain
        with tempfile.TemporaryDirectory(prefix=f"forgematrix-{stage.value}-") as scratch:
            cache_dir = unpack_archive(artifact.blob, Path(scratch) / "deps")
            out_dir = Path(scratch) / "out"
            out_dir.mkdir()
            argv = toolchain.render(
                template,
                source=str(snapshot.root),
                out_dir=str(out_dir),
                cache_dir=str(cache_dir),
                target=context.toolchain.target_triple,
                platform=context.platform_id,
                dependency="",
                name=self._project.name,
            )
            return self._runner.run(ToolInvocation(
                stage=stage,
                platform_id=context.platform_id,
                argv=tuple(argv),
                cwd=snapshot.root,
                env=context.env_overrides,
                out_dir=out_dir,
            ))
