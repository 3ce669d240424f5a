"""File identity helpers used for idempotent reprocessing."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Iterable

_READ_BLOCK = 8192


def resolve_path(path: str | os.PathLike[str]) -> Path:
    """Absolute, symlink-resolved form of ``path``; the file need not exist."""
    return Path(path).expanduser().resolve(strict=False)


def file_id(path: str | os.PathLike[str]) -> str:
    """Stable identity of a file: digest of its lower-cased resolved path."""
    key = str(resolve_path(path)).lower()
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def file_hash(path: str | os.PathLike[str]) -> str:
    """Digest of the file content, read in fixed-size blocks."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for block in iter(lambda: fh.read(_READ_BLOCK), b""):
            digest.update(block)
    return digest.hexdigest()


def file_ids(paths: Iterable[str | os.PathLike[str]]) -> set[str]:
    return {file_id(path) for path in paths}


__all__ = ["resolve_path", "file_id", "file_hash", "file_ids"]
