"""Unit tests for the CheckRenderer.

Tests Rich table/panel output, failure listings and log tails.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from forgematrix.core.aggregator import CheckAggregator
from forgematrix.models.results import (
    DevEnvironment,
    MatrixReport,
    Package,
    PipelineStage,
    StageResult,
    StageStatus,
    TestCounts,
)
from forgematrix.monitor.renderer import CheckRenderer


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_report(lint_status: StageStatus = StageStatus.PASSED) -> MatrixReport:
    results = [
        StageResult(
            stage=PipelineStage.CACHE,
            platform_id="x86_64-linux",
            status=StageStatus.PASSED,
            details={"cache_hit": True},
        ),
        StageResult(
            stage=PipelineStage.LINT,
            platform_id="x86_64-linux",
            status=lint_status,
            log="warning: unused variable: `x`\n" if lint_status == StageStatus.FAILED else "",
            details={"reason": "1 diagnostic(s) at or above warning"},
        ),
        StageResult(
            stage=PipelineStage.TEST,
            platform_id="x86_64-linux",
            status=StageStatus.PASSED,
            test_counts=TestCounts(passed=3),
        ),
    ]
    aggregator = CheckAggregator()
    linux = aggregator.aggregate("x86_64-linux", results)
    return MatrixReport(
        run_id="fm-test-run",
        snapshot_hash="ab" * 32,
        platforms={"x86_64-linux": linux},
        packages={
            "x86_64-linux": Package(
                platform_id="x86_64-linux",
                artifact_path=Path("dist/app-x86_64-linux.tar.gz"),
                content_hash="cd" * 32,
            )
        },
        checks=aggregator.combine("fm-test-run", [linux]),
    )


@pytest.fixture
def console() -> Console:
    return Console(record=True, width=140)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestRenderables:
    def test_render_checkset_is_table(self):
        table = CheckRenderer().render_checkset(_make_report().checks)
        assert isinstance(table, Table)
        assert table.row_count == 3

    def test_render_report_is_panel(self):
        assert isinstance(CheckRenderer().render_report(_make_report()), Panel)


class TestPrinting:
    def test_passing_report(self, console: Console):
        CheckRenderer(console).print_report(_make_report())
        text = console.export_text()
        assert "fm-test-run" in text
        assert "x86_64-linux/cache" in text
        assert "cache hit" in text
        assert "3 passed, 0 failed" in text

    def test_failed_check_shows_log_tail(self, console: Console):
        CheckRenderer(console).print_report(_make_report(StageStatus.FAILED))
        text = console.export_text()
        assert "FAILED" in text
        assert "unused variable" in text

    def test_logs_can_be_suppressed(self, console: Console):
        CheckRenderer(console).print_report(_make_report(StageStatus.FAILED), show_logs=False)
        assert "unused variable" not in console.export_text()

    def test_print_failures(self, console: Console):
        CheckRenderer(console).print_failures(["x86_64-linux/lint"])
        assert "- x86_64-linux/lint" in console.export_text()

    def test_print_failures_empty_prints_nothing(self, console: Console):
        CheckRenderer(console).print_failures([])
        assert console.export_text() == ""

    def test_print_packages(self, console: Console):
        CheckRenderer(console).print_packages(_make_report())
        text = console.export_text()
        assert "app-x86_64-linux.tar.gz" in text
        assert "cd" * 32 in text

    def test_print_dev_environment(self, console: Console):
        devenv = DevEnvironment(
            platform_id="x86_64-linux",
            tools=("cargo", "openssl"),
            env={"FORGEMATRIX_TARGET": "x86_64-unknown-linux-gnu"},
        )
        CheckRenderer(console).print_dev_environment(devenv)
        text = console.export_text()
        assert "FORGEMATRIX_TARGET" in text
        assert "cargo, openssl" in text
