"""Tests for the Quality Gate Runner: lint severity policy and test evaluation."""

from __future__ import annotations

import pytest

from forgematrix.core.dependency_cache import DependencyCacheBuilder
from forgematrix.core.quality_gates import (
    LintFailure,
    LintPolicy,
    QualityGateRunner,
    Severity,
    TestFailure,
    evaluate_lint,
    evaluate_tests,
    parse_diagnostics,
    parse_test_counts,
)
from forgematrix.core.toolchain import ToolResult
from forgematrix.models.results import PipelineStage, StageStatus

WARNING_LOG = (
    "    Checking app v0.1.0\n"
    "warning: unused variable: `x`\n"
    "  --> src/main.rs:2:9\n"
    "    Finished dev [unoptimized]\n"
)
ERROR_LOG = "error[E0425]: cannot find value `y` in this scope\n"

CARGO_TEST_LOG = (
    "running 4 tests\n"
    "test result: ok. 4 passed; 0 failed; 0 ignored\n"
    "running 2 tests\n"
    "test result: FAILED. 1 passed; 1 failed; 0 ignored\n"
)


@pytest.fixture
def artifact(project, memory_store, runner, snapshot, linux_context):
    return DependencyCacheBuilder(project, memory_store, runner).ensure(snapshot, linux_context)


class TestDiagnostics:
    def test_parse_severities(self):
        found = parse_diagnostics(WARNING_LOG + ERROR_LOG + "note: see above\n")
        assert [sev for sev, _ in found] == [Severity.WARNING, Severity.ERROR, Severity.NOTE]

    def test_ignores_non_diagnostic_lines(self):
        assert parse_diagnostics("Compiling warning-crate v1.0\nFinished\n") == []

    def test_severity_parse_rejects_unknown(self):
        with pytest.raises(ValueError):
            Severity.parse("fatal")


class TestLintPolicy:
    def test_warning_fails_with_warnings_as_errors(self):
        with pytest.raises(LintFailure) as excinfo:
            evaluate_lint(ToolResult(exit_code=0, log=WARNING_LOG), LintPolicy())
        assert excinfo.value.diagnostics == ["warning: unused variable: `x`"]

    def test_warning_passes_without_warnings_as_errors(self):
        policy = LintPolicy(warnings_as_errors=False)
        assert evaluate_lint(ToolResult(exit_code=0, log=WARNING_LOG), policy) == []

    def test_error_always_fails(self):
        with pytest.raises(LintFailure):
            evaluate_lint(
                ToolResult(exit_code=0, log=ERROR_LOG), LintPolicy(warnings_as_errors=False)
            )

    def test_nonzero_exit_fails_without_diagnostics(self):
        with pytest.raises(LintFailure, match="exited with code 101"):
            evaluate_lint(ToolResult(exit_code=101, log="boom\n"), LintPolicy())

    def test_effective_threshold(self):
        assert LintPolicy().effective_threshold == Severity.WARNING
        assert LintPolicy(warnings_as_errors=False).effective_threshold == Severity.ERROR
        assert (
            LintPolicy(warnings_as_errors=True, threshold=Severity.NOTE).effective_threshold
            == Severity.NOTE
        )


class TestTestEvaluation:
    def test_counts_summed_across_binaries(self):
        counts = parse_test_counts(CARGO_TEST_LOG)
        assert (counts.passed, counts.failed, counts.total) == (5, 1, 6)

    def test_failed_count_fails(self):
        with pytest.raises(TestFailure) as excinfo:
            evaluate_tests(ToolResult(exit_code=0, log=CARGO_TEST_LOG))
        assert excinfo.value.counts.failed == 1

    def test_nonzero_exit_fails_even_without_counts(self):
        with pytest.raises(TestFailure, match="exited with code 2"):
            evaluate_tests(ToolResult(exit_code=2, log="could not compile\n"))

    def test_clean_run_returns_counts(self):
        counts = evaluate_tests(ToolResult(exit_code=0, log="12 passed in 0.3s\n"))
        assert counts.passed == 12


class TestQualityGateRunner:
    def test_lint_and_test_pass(self, project, runner, snapshot, linux_context, artifact):
        gates = QualityGateRunner(project, runner)
        lint = gates.run_lint(snapshot, linux_context, artifact)
        test = gates.run_test(snapshot, linux_context, artifact)

        assert lint.status == StageStatus.PASSED
        assert test.status == StageStatus.PASSED
        assert test.test_counts.passed == 3

    def test_lint_warning_becomes_failed_result(self, project, runner, snapshot, linux_context, artifact):
        runner.handlers[PipelineStage.LINT] = lambda inv: ToolResult(exit_code=0, log=WARNING_LOG)
        result = QualityGateRunner(project, runner).run_lint(snapshot, linux_context, artifact)

        assert result.status == StageStatus.FAILED
        assert result.details["diagnostics"] == ["warning: unused variable: `x`"]
        assert "unused variable" in result.log

    def test_failing_tests_become_failed_result(self, project, runner, snapshot, linux_context, artifact):
        runner.handlers[PipelineStage.TEST] = lambda inv: ToolResult(exit_code=100, log=CARGO_TEST_LOG)
        result = QualityGateRunner(project, runner).run_test(snapshot, linux_context, artifact)

        assert result.status == StageStatus.FAILED
        assert result.test_counts.failed == 1

    def test_invocation_uses_target_and_unpacked_cache(self, project, runner, snapshot, linux_context, artifact):
        seen = {}

        def capture(inv):
            seen["argv"] = inv.argv
            seen["env"] = inv.env
            return ToolResult(exit_code=0, log="")

        runner.handlers[PipelineStage.LINT] = capture
        QualityGateRunner(project, runner).run_lint(snapshot, linux_context, artifact)

        assert "x86_64-unknown-linux-gnu" in seen["argv"]
        assert seen["env"]["FORGEMATRIX_PLATFORM"] == "x86_64-linux"

    def test_stages_do_not_mutate_artifact(self, project, runner, snapshot, linux_context, artifact):
        before = artifact.blob

        def scribble(inv):
            for path in inv.out_dir.parent.joinpath("deps").iterdir():
                path.write_text("tampered")
            return ToolResult(exit_code=0, log="")

        runner.handlers[PipelineStage.LINT] = scribble
        QualityGateRunner(project, runner).run_lint(snapshot, linux_context, artifact)
        assert artifact.blob == before
