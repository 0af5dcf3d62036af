"""Check Aggregator — StageResults -> CheckSet with one verdict.

Every result handed in is reported; a failure marks the set failed but
never hides its siblings.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from forgematrix.models.results import CheckSet, StageResult

logger = logging.getLogger(__name__)


class CheckAggregator:
    """Builds per-platform and run-level CheckSets."""

    def aggregate(self, name: str, results: Iterable[StageResult]) -> CheckSet:
        """Collect *results* under their ``<platform>/<stage>`` names.

        Raises ``ValueError`` if two results share a check name.
        """
        checks: dict[str, StageResult] = {}
        for result in results:
            check_name = result.check_name
            if check_name in checks:
                raise ValueError(f"Duplicate check name in {name}: {check_name}")
            checks[check_name] = result
        checkset = CheckSet(name=name, checks=checks)
        logger.info(
            "%s: %s (%d checks)", name, checkset.verdict.value, len(checkset)
        )
        return checkset

    def combine(self, name: str, checksets: Iterable[CheckSet]) -> CheckSet:
        """Merge several CheckSets into one; names must stay unique."""
        merged: list[StageResult] = []
        for checkset in checksets:
            merged.extend(checkset.checks.values())
        return self.aggregate(name, merged)
