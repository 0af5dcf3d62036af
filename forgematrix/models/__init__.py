"""Forgematrix data models — all Pydantic v2, all frozen (immutable)."""

from forgematrix.models.cache import CacheArtifact, CacheKey
from forgematrix.models.platforms import (
    PLATFORM_TOOLCHAINS,
    BuildContext,
    Platform,
    PlatformToolchain,
)
from forgematrix.models.project import ProjectSpec, ProjectSpecError, ToolchainCommands
from forgematrix.models.results import (
    ALL_STAGES,
    CheckSet,
    DevEnvironment,
    MatrixReport,
    Package,
    PipelineStage,
    StageResult,
    StageStatus,
    TestCounts,
)
from forgematrix.models.snapshot import FileEntry, SourceSnapshot

__all__ = [
    # platforms
    "Platform",
    "PlatformToolchain",
    "BuildContext",
    "PLATFORM_TOOLCHAINS",
    # project
    "ProjectSpec",
    "ProjectSpecError",
    "ToolchainCommands",
    # snapshot
    "FileEntry",
    "SourceSnapshot",
    # cache
    "CacheKey",
    "CacheArtifact",
    # results
    "PipelineStage",
    "ALL_STAGES",
    "StageStatus",
    "StageResult",
    "TestCounts",
    "CheckSet",
    "Package",
    "DevEnvironment",
    "MatrixReport",
]
