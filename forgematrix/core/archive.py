"""Deterministic tar.gz packing of build output directories.

Equal directory trees pack to equal bytes: entries are sorted, owner and
timestamp fields are zeroed, and the gzip header carries no mtime.
"""

from __future__ import annotations

import gzip
import io
import os
import tarfile
from pathlib import Path


def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.mtime = 0
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    if info.isdir():
        info.mode = 0o755
    elif info.isfile():
        info.mode = 0o755 if info.mode & 0o100 else 0o644
    return info


def pack_directory(path: Path) -> bytes:
    """Pack every file and directory under *path* into tar.gz bytes."""
    path = Path(path)
    members: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(path):
        base = Path(dirpath)
        members.extend(base / d for d in dirnames)
        members.extend(base / f for f in filenames)
    members.sort(key=lambda p: p.relative_to(path).as_posix())

    raw = io.BytesIO()
    with gzip.GzipFile(fileobj=raw, mode="wb", mtime=0) as gz:
        with tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for member in members:
                tar.add(
                    member,
                    arcname=member.relative_to(path).as_posix(),
                    recursive=False,
                    filter=_normalize,
                )
    return raw.getvalue()


def unpack_archive(blob: bytes, dest: Path) -> Path:
    """Extract tar.gz *blob* into *dest* (created if needed) and return it."""
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    with tarfile.open(fileobj=io.BytesIO(blob), mode="r:gz") as tar:
        tar.extractall(dest, filter="data")
    return dest


def is_empty_directory(path: Path) -> bool:
    path = Path(path)
    return not path.exists() or not any(path.iterdir())
