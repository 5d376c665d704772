"""Content hashing utilities using stdlib hashlib (SHA-256)."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path

from shipline.config import SNAPSHOT_EXCLUDE_DIRS


class Hasher:
    """SHA-256 hashing for strings, files, and source snapshots."""

    @staticmethod
    def hash_string(text: str) -> str:
        """Return the SHA-256 hex digest of *text*."""
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    @staticmethod
    def hash_file(path: str | Path) -> str:
        """Return the SHA-256 hex digest of the file at *path*."""
        h = hashlib.sha256()
        with Path(path).open("rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                h.update(chunk)
        return h.hexdigest()

    @staticmethod
    def snapshot_files(
        path: str | Path,
        exclude_dirs: Iterable[str] = SNAPSHOT_EXCLUDE_DIRS,
    ) -> list[Path]:
        """Return the files of a source snapshot, sorted by relative path."""
        root = Path(path)
        skip = set(exclude_dirs)
        files = [
            f for f in root.rglob("*")
            if f.is_file() and not skip.intersection(f.relative_to(root).parts)
        ]
        return sorted(files, key=lambda f: f.relative_to(root).as_posix())

    @staticmethod
    def hash_snapshot(
        path: str | Path,
        exclude_dirs: Iterable[str] = SNAPSHOT_EXCLUDE_DIRS,
    ) -> str:
        """Return a SHA-256 digest covering every file in a source snapshot.

        Only relative paths and file contents are hashed, so the digest does
        not depend on mtimes, ownership or where the snapshot is checked out.
        """
        root = Path(path)
        h = hashlib.sha256()
        for f in Hasher.snapshot_files(root, exclude_dirs):
            rel = f.relative_to(root).as_posix()
            h.update(f"{rel}:{Hasher.hash_file(f)}\n".encode("utf-8"))
        return h.hexdigest()
