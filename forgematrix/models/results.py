"""Stage results, check sets and packages."""

from __future__ import annotations

import shlex
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict


class PipelineStage(str, Enum):
    """The four per-platform pipeline stages."""

    CACHE = "cache"
    LINT = "lint"
    TEST = "test"
    PACKAGE = "package"


ALL_STAGES: tuple[PipelineStage, ...] = (
    PipelineStage.CACHE,
    PipelineStage.LINT,
    PipelineStage.TEST,
    PipelineStage.PACKAGE,
)


class StageStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class TestCounts(BaseModel):
    """Per-test pass/fail counts parsed from a test runner log."""

    __test__ = False  # not a pytest class

    model_config = ConfigDict(frozen=True)

    passed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.passed + self.failed


class StageResult(BaseModel):
    """Outcome of one stage for one platform.  Produced once, immutable."""

    model_config = ConfigDict(frozen=True)

    stage: PipelineStage
    platform_id: str
    status: StageStatus
    log: str = ""
    artifact_ref: str | None = None
    test_counts: TestCounts | None = None
    details: dict[str, Any] = {}

    @property
    def passed(self) -> bool:
        return self.status == StageStatus.PASSED

    @property
    def check_name(self) -> str:
        return f"{self.platform_id}/{self.stage.value}"


class CheckSet(BaseModel):
    """Named mapping of check name -> StageResult with an overall verdict.

    The verdict is passed iff no constituent result failed; skipped
    results are reported but do not fail the set.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    checks: dict[str, StageResult] = {}

    @property
    def passed(self) -> bool:
        return not any(
            result.status == StageStatus.FAILED for result in self.checks.values()
        )

    @property
    def verdict(self) -> StageStatus:
        return StageStatus.PASSED if self.passed else StageStatus.FAILED

    def failed_checks(self) -> list[str]:
        """Names of every failed check, sorted."""
        return self._names_with(StageStatus.FAILED)

    def skipped_checks(self) -> list[str]:
        return self._names_with(StageStatus.SKIPPED)

    def _names_with(self, status: StageStatus) -> list[str]:
        return sorted(
            name for name, result in self.checks.items() if result.status == status
        )

    def get(self, name: str) -> StageResult:
        return self.checks[name]

    def __len__(self) -> int:
        return len(self.checks)


class Package(BaseModel):
    """Final distributable artifact for one platform."""

    model_config = ConfigDict(frozen=True)

    platform_id: str
    artifact_path: Path
    content_hash: str  # sha256 hex of the artifact file


class DevEnvironment(BaseModel):
    """Stateless dev-environment descriptor, recomputed on every request."""

    model_config = ConfigDict(frozen=True)

    platform_id: str
    tools: tuple[str, ...] = ()
    env: dict[str, str] = {}

    def shell_exports(self) -> str:
        """Render the overlay as POSIX ``export`` lines, sorted by name."""
        return "\n".join(
            f"export {name}={shlex.quote(value)}"
            for name, value in sorted(self.env.items())
        )


class MatrixReport(BaseModel):
    """Everything one orchestrator run produced, across all platforms."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    snapshot_hash: str
    platforms: dict[str, CheckSet] = {}
    packages: dict[str, Package] = {}
    checks: CheckSet
    cancelled: bool = False

    @property
    def passed(self) -> bool:
        return self.checks.passed and not self.cancelled

    def failed_checks(self) -> list[str]:
        return self.checks.failed_checks()
