"""forgematrix: reproducible build-matrix orchestrator.

From one declarative project file and one dependency lock state,
forgematrix derives, per target platform:
  - a reusable dependency-only build cache, compiled once per cache key
  - lint and test verdicts run against that cache
  - a reproducible installable package
  - a development environment with the same toolchain overlay
and aggregates the stage results into one pass/fail check set.
"""

__version__ = "0.1.0"
__description__ = "Reproducible build-matrix orchestrator"

from forgematrix.core.orchestrator import MatrixOrchestrator
from forgematrix.cli.app import app as cli

__all__ = ["MatrixOrchestrator", "cli", "__version__"]
