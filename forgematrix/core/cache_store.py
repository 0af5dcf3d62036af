"""Dependency cache store — content-keyed, write-once, atomic.

Storage layout: {base_path}/{key[0:2]}/{key}.tar.gz
A key is written at most once.  Writes land in a temporary file in the
same directory and are renamed into place, so a partially written blob is
never visible under its key.  There is no eviction; that is left to an
external storage policy.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from forgematrix.models.cache import CacheArtifact

logger = logging.getLogger(__name__)


class CacheStoreError(RuntimeError):
    """Raised when a cache entry is missing or cannot be written."""


@runtime_checkable
class CacheStore(Protocol):
    """Interface every cache store backend satisfies."""

    def exists(self, key: str) -> bool:
        """Return ``True`` if an artifact is stored under *key*."""
        ...

    def read(self, key: str) -> CacheArtifact:
        """Return the artifact stored under *key*."""
        ...

    def atomic_write(self, artifact: CacheArtifact) -> CacheArtifact:
        """Store *artifact* atomically; an existing key is left untouched."""
        ...


class FileCacheStore:
    """Filesystem cache store.

    Parameters
    ----------
    base_path:
        Root directory for cache blobs.
    """

    def __init__(self, base_path: Path) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    def _blob_path(self, key: str) -> Path:
        return self._base / key[:2] / f"{key}.tar.gz"

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def exists(self, key: str) -> bool:
        return self._blob_path(key).is_file()

    def read(self, key: str) -> CacheArtifact:
        path = self._blob_path(key)
        try:
            blob = path.read_bytes()
            mtime = path.stat().st_mtime
        except FileNotFoundError as exc:
            raise CacheStoreError(f"Cache entry not found: {key}") from exc
        return CacheArtifact(
            key=key,
            blob=blob,
            created_at=datetime.fromtimestamp(mtime, tz=timezone.utc),
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def atomic_write(self, artifact: CacheArtifact) -> CacheArtifact:
        path = self._blob_path(artifact.key)
        if path.exists():
            logger.debug("Cache entry %s already stored; not overwriting", artifact.key[:12])
            return self.read(artifact.key)

        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{artifact.key[:12]}-", suffix=".partial"
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(artifact.blob)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(
            "Stored cache entry %s (%d bytes)", artifact.key[:12], artifact.size_bytes
        )
        return artifact


class MemoryCacheStore:
    """In-memory cache store for tests and dry runs.

    ``writes`` counts successful first writes, so tests can observe the
    write-once discipline directly.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheArtifact] = {}
        self._lock = threading.Lock()
        self.writes = 0

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def read(self, key: str) -> CacheArtifact:
        with self._lock:
            try:
                return self._entries[key]
            except KeyError as exc:
                raise CacheStoreError(f"Cache entry not found: {key}") from exc

    def atomic_write(self, artifact: CacheArtifact) -> CacheArtifact:
        with self._lock:
            existing = self._entries.get(artifact.key)
            if existing is not None:
                return existing
            self._entries[artifact.key] = artifact
            self.writes += 1
            return artifact

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)
