"""Shared test fixtures for forgematrix."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from forgematrix.config import MatrixSettings
from forgematrix.core.cache_store import MemoryCacheStore
from forgematrix.core.orchestrator import MatrixOrchestrator
from forgematrix.core.resolver import TargetMatrixResolver
from forgematrix.core.snapshot import take_snapshot
from forgematrix.core.toolchain import ToolchainCancelled, ToolInvocation, ToolResult
from forgematrix.models.platforms import BuildContext
from forgematrix.models.project import ProjectSpec, ToolchainCommands
from forgematrix.models.results import PipelineStage
from forgematrix.models.snapshot import SourceSnapshot

Handler = Callable[[ToolInvocation], ToolResult]


# ---------------------------------------------------------------------------
# Fake toolchain
# ---------------------------------------------------------------------------


def default_handler(invocation: ToolInvocation) -> ToolResult:
    """Succeed, writing deterministic output where a stage expects some."""
    if invocation.stage == PipelineStage.CACHE and invocation.out_dir is not None:
        (invocation.out_dir / f"{invocation.dependency}.rlib").write_text(
            f"{invocation.dependency} for {invocation.platform_id}\n"
        )
        return ToolResult(exit_code=0, log=f"Compiling {invocation.dependency}\n")
    if invocation.stage == PipelineStage.PACKAGE and invocation.out_dir is not None:
        bin_dir = invocation.out_dir / "bin"
        bin_dir.mkdir(parents=True, exist_ok=True)
        (bin_dir / "app").write_text(f"binary for {invocation.platform_id}\n")
        return ToolResult(exit_code=0, log="Finished release\n")
    if invocation.stage == PipelineStage.TEST:
        return ToolResult(exit_code=0, log="Summary 3 tests run: 3 passed, 0 skipped\n")
    return ToolResult(exit_code=0, log="Checking app\nFinished\n")


class FakeRunner:
    """In-process ToolRunner that records every invocation.

    ``handlers`` maps a stage to a callable producing the ToolResult;
    stages without a handler use :func:`default_handler`.  ``delay``
    widens race windows in concurrency tests.
    """

    def __init__(self) -> None:
        self.invocations: list[ToolInvocation] = []
        self.handlers: dict[PipelineStage, Handler] = {}
        self.delay = 0.0
        self.cancelled = False
        self._lock = threading.Lock()

    def run(self, invocation: ToolInvocation) -> ToolResult:
        if self.cancelled:
            raise ToolchainCancelled("fake runner cancelled")
        with self._lock:
            self.invocations.append(invocation)
        if self.delay:
            time.sleep(self.delay)
        handler = self.handlers.get(invocation.stage, default_handler)
        return handler(invocation)

    def cancel(self) -> None:
        self.cancelled = True

    def count(self, stage: PipelineStage | None = None, platform_id: str | None = None) -> int:
        with self._lock:
            return sum(
                1
                for inv in self.invocations
                if (stage is None or inv.stage == stage)
                and (platform_id is None or inv.platform_id == platform_id)
            )


# ---------------------------------------------------------------------------
# Project, source tree, settings
# ---------------------------------------------------------------------------


@pytest.fixture
def project() -> ProjectSpec:
    """A cargo-style project with two dependencies."""
    return ProjectSpec(
        name="app",
        platforms=("x86_64-linux", "aarch64-darwin"),
        lock_files=("Cargo.lock",),
        dependencies=("nom", "anyhow"),
        libraries=("openssl", "pkg-config"),
        toolchain=ToolchainCommands(
            dependencies="cargo build -p {dependency} --target {target} --target-dir {out_dir}",
            lint="cargo clippy --target {target} -- --deny warnings",
            test="cargo nextest run --target {target}",
            package="cargo install --path {source} --target {target} --root {out_dir}",
            run="{out_dir}/bin/app",
            dev_tools=("cargo", "rustc", "rust-analyzer"),
        ),
    )


@pytest.fixture
def source_tree(tmp_path: Path) -> Path:
    """A small source tree with a lock file, own code and ignorable noise."""
    root = tmp_path / "src-root"
    (root / "src").mkdir(parents=True)
    (root / "Cargo.lock").write_text('[[package]]\nname = "nom"\nversion = "7.1.3"\n')
    (root / "Cargo.toml").write_text('[package]\nname = "app"\n')
    (root / "src" / "main.rs").write_text("fn main() {}\n")
    (root / "target" / "debug").mkdir(parents=True)
    (root / "target" / "debug" / "app").write_text("stale build output")
    (root / ".git").mkdir()
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    return root


@pytest.fixture
def snapshot(source_tree: Path) -> SourceSnapshot:
    return take_snapshot(source_tree)


@pytest.fixture
def settings(tmp_path: Path) -> MatrixSettings:
    """Settings with temp storage, a fixed host and no library roots."""
    return MatrixSettings(
        cache_store_path=tmp_path / "cache",
        dist_path=tmp_path / "dist",
        host_os="linux",
        host_arch="x86_64",
        platforms="",
        library_path="",
        max_workers=4,
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def memory_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def resolver(project: ProjectSpec, settings: MatrixSettings) -> TargetMatrixResolver:
    return TargetMatrixResolver(project, settings)


@pytest.fixture
def linux_context(resolver: TargetMatrixResolver) -> BuildContext:
    (context,) = resolver.resolve(["x86_64-linux"])
    return context


@pytest.fixture
def darwin_context(resolver: TargetMatrixResolver) -> BuildContext:
    (context,) = resolver.resolve(["aarch64-darwin"])
    return context


@pytest.fixture
def orchestrator(
    project: ProjectSpec,
    settings: MatrixSettings,
    memory_store: MemoryCacheStore,
    runner: FakeRunner,
) -> MatrixOrchestrator:
    return MatrixOrchestrator(
        project, settings, cache_store=memory_store, runner=runner, run_id="fm-test-run"
    )
