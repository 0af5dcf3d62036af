"""Source Snapshot Provider.

Produces an immutable, filtered view of a source tree.  The content hash
is computed over the canonically sorted file list, so it is independent
of filesystem traversal order.  Tools never see the live tree: each run
works on a verified copy made by :func:`materialize_snapshot`.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import shutil
import stat
from collections.abc import Iterable
from pathlib import Path

from forgematrix.core.hasher import canonical_json_bytes, sha256_file, sha256_hex
from forgematrix.models.snapshot import FileEntry, SourceSnapshot

logger = logging.getLogger(__name__)

DEFAULT_IGNORE: frozenset[str] = frozenset({
    ".git",
    ".hg",
    ".svn",
    ".forgematrix",
    "target",
    "result",
    "dist",
    "__pycache__",
})


class SnapshotError(RuntimeError):
    """Raised when the source root (or a file under it) cannot be read."""


def _is_ignored(parts: tuple[str, ...], patterns: frozenset[str]) -> bool:
    return any(
        fnmatch.fnmatchcase(part, pattern) for part in parts for pattern in patterns
    )


def take_snapshot(
    root: Path | str,
    ignore: Iterable[str] | None = None,
) -> SourceSnapshot:
    """Snapshot *root*, skipping any path with a component matching *ignore*.

    *ignore* is merged with :data:`DEFAULT_IGNORE`.
    """
    root = Path(root)
    patterns = DEFAULT_IGNORE | frozenset(ignore or ())

    if not root.is_dir() or not os.access(root, os.R_OK | os.X_OK):
        raise SnapshotError(f"Source root is not a readable directory: {root}")

    def _walk_error(exc: OSError) -> None:
        raise SnapshotError(f"Cannot read {exc.filename}: {exc.strerror}") from exc

    entries: list[FileEntry] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_walk_error):
        rel_dir = Path(dirpath).relative_to(root)
        # Prune ignored directories in place so os.walk never descends.
        dirnames[:] = [
            d for d in dirnames if not _is_ignored((d,), patterns)
        ]
        for filename in filenames:
            rel = rel_dir / filename
            if _is_ignored(rel.parts, patterns):
                continue
            try:
                digest = sha256_file(root / rel)
            except OSError as exc:
                raise SnapshotError(f"Cannot read {root / rel}: {exc}") from exc
            entries.append(FileEntry(path=rel.as_posix(), digest=digest))

    entries.sort(key=lambda e: e.path)
    content_hash = sha256_hex(
        canonical_json_bytes([[e.path, e.digest] for e in entries])
    )
    logger.info(
        "Snapshot of %s: %d files, content_hash=%s",
        root,
        len(entries),
        content_hash[:12],
    )
    return SourceSnapshot(root=root, files=tuple(entries), content_hash=content_hash)


def materialize_snapshot(snapshot: SourceSnapshot, dest: Path | str) -> SourceSnapshot:
    """Copy the snapshot's files into *dest* and return a snapshot rooted there.

    Only the files recorded in *snapshot* are copied, so ignored paths never
    reach the tools.  Every copy is re-hashed against its recorded digest;
    a file that changed or disappeared since the snapshot was taken raises
    ``SnapshotError``.  Copied files are made read-only.
    """
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    for entry in snapshot.files:
        source = snapshot.root / entry.path
        target = dest / entry.path
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copyfile(source, target)
            mode = stat.S_IMODE(source.stat().st_mode)
        except OSError as exc:
            raise SnapshotError(f"Cannot copy {source}: {exc}") from exc
        if sha256_file(target) != entry.digest:
            raise SnapshotError(
                f"{entry.path} changed since snapshot {snapshot.content_hash[:12]} was taken"
            )
        target.chmod(mode & 0o555)

    logger.debug(
        "Materialized snapshot %s into %s (%d files)",
        snapshot.content_hash[:12],
        dest,
        len(snapshot.files),
    )
    return snapshot.model_copy(update={"root": dest})
