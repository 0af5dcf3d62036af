"""Dependency cache models — keys and immutable compiled-dependency artifacts."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class CacheKey(BaseModel):
    """Deterministic fingerprint of (lock state, platform, external libraries)."""

    model_config = ConfigDict(frozen=True)

    digest: str  # sha256 hex
    lock_hash: str
    platform_id: str
    libraries_hash: str

    def __str__(self) -> str:
        return self.digest


class CacheArtifact(BaseModel):
    """Compiled dependencies for one CacheKey.

    Created on a cache miss, read-only thereafter.  Never mutated in place.
    """

    model_config = ConfigDict(frozen=True)

    key: str  # CacheKey.digest
    blob: bytes = Field(repr=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def size_bytes(self) -> int:
        return len(self.blob)
