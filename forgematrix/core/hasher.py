"""Canonical hashing helpers for cache keys, snapshots and packages.

Every fingerprint in forgematrix goes through ``canonical_json_bytes`` so
that identical inputs always produce identical digests.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

_CHUNK_SIZE = 1024 * 1024


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    """Stream a file through SHA-256 and return the hex digest."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def compute_libraries_hash(libraries: list[str] | tuple[str, ...]) -> str:
    """Order-independent hash of an external library list."""
    return sha256_hex(canonical_json_bytes(sorted(set(libraries))))


def compute_cache_key_digest(
    lock_hash: str, platform_id: str, libraries_hash: str
) -> str:
    """SHA-256 of canonical(lock state + platform + libraries).

    Two runs with identical inputs produce an identical digest.
    """
    payload = {
        "lock_hash": lock_hash,
        "platform": platform_id,
        "libraries_hash": libraries_hash,
    }
    return sha256_hex(canonical_json_bytes(payload))
