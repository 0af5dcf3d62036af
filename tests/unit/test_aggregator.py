"""Tests for the Check Aggregator."""

from __future__ import annotations

import pytest

from forgematrix.core.aggregator import CheckAggregator
from forgematrix.models.results import PipelineStage, StageResult, StageStatus


def _result(stage: PipelineStage, status: StageStatus, platform_id: str = "x86_64-linux") -> StageResult:
    return StageResult(stage=stage, platform_id=platform_id, status=status)


class TestAggregate:
    def test_one_failure_fails_the_set_but_keeps_siblings(self):
        checkset = CheckAggregator().aggregate("x86_64-linux", [
            _result(PipelineStage.CACHE, StageStatus.PASSED),
            _result(PipelineStage.LINT, StageStatus.FAILED),
            _result(PipelineStage.TEST, StageStatus.PASSED),
            _result(PipelineStage.PACKAGE, StageStatus.PASSED),
        ])

        assert checkset.verdict == StageStatus.FAILED
        assert len(checkset) == 4
        assert checkset.failed_checks() == ["x86_64-linux/lint"]
        assert checkset.get("x86_64-linux/test").passed

    def test_all_passed(self):
        checkset = CheckAggregator().aggregate("x86_64-linux", [
            _result(stage, StageStatus.PASSED) for stage in PipelineStage
        ])
        assert checkset.passed
        assert checkset.failed_checks() == []

    def test_skipped_does_not_fail_the_set(self):
        checkset = CheckAggregator().aggregate("x86_64-linux", [
            _result(PipelineStage.CACHE, StageStatus.PASSED),
            _result(PipelineStage.LINT, StageStatus.SKIPPED),
        ])
        assert checkset.passed
        assert checkset.failed_checks() == []
        assert checkset.skipped_checks() == ["x86_64-linux/lint"]

    def test_failed_cache_with_skipped_downstream(self):
        checkset = CheckAggregator().aggregate("x86_64-linux", [
            _result(PipelineStage.CACHE, StageStatus.FAILED),
            _result(PipelineStage.LINT, StageStatus.SKIPPED),
        ])
        assert not checkset.passed
        assert checkset.failed_checks() == ["x86_64-linux/cache"]

    def test_empty_set_passes(self):
        assert CheckAggregator().aggregate("empty", []).passed

    def test_duplicate_check_name_raises(self):
        with pytest.raises(ValueError, match="Duplicate"):
            CheckAggregator().aggregate("x86_64-linux", [
                _result(PipelineStage.LINT, StageStatus.PASSED),
                _result(PipelineStage.LINT, StageStatus.FAILED),
            ])


class TestCombine:
    def test_combine_merges_platforms(self):
        aggregator = CheckAggregator()
        linux = aggregator.aggregate("x86_64-linux", [_result(PipelineStage.CACHE, StageStatus.PASSED)])
        darwin = aggregator.aggregate("aarch64-darwin", [
            _result(PipelineStage.CACHE, StageStatus.FAILED, "aarch64-darwin"),
        ])

        combined = aggregator.combine("run", [linux, darwin])

        assert len(combined) == 2
        assert not combined.passed
        assert combined.failed_checks() == ["aarch64-darwin/cache"]
