"""Source snapshot model — an immutable, hashed view of the source tree."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from forgematrix.core.hasher import canonical_json_bytes, sha256_hex


class FileEntry(BaseModel):
    """One file in a snapshot: POSIX path relative to the root + SHA-256."""

    model_config = ConfigDict(frozen=True)

    path: str
    digest: str


class SourceSnapshot(BaseModel):
    """Immutable source view created once per invocation.

    ``files`` is sorted by path, so ``content_hash`` does not depend on
    filesystem traversal order.
    """

    model_config = ConfigDict(frozen=True)

    root: Path
    files: tuple[FileEntry, ...] = ()
    content_hash: str

    @property
    def paths(self) -> list[str]:
        return [entry.path for entry in self.files]

    def subset(self, paths: list[str]) -> tuple[FileEntry, ...]:
        """Return the entries whose path is in *paths*, in snapshot order."""
        wanted = set(paths)
        return tuple(entry for entry in self.files if entry.path in wanted)

    def lock_state_hash(
        self, lock_files: list[str], dependencies: list[str] | None = None
    ) -> str:
        """Hash of the dependency-lock subset plus the declared dependency names.

        Changes to the project's own code leave this hash unchanged.
        """
        payload = {
            "lock_files": [
                [entry.path, entry.digest] for entry in self.subset(lock_files)
            ],
            "dependencies": sorted(set(dependencies or [])),
        }
        return sha256_hex(canonical_json_bytes(payload))
