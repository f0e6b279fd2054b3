"""Atomic file writes and stat helpers for the storage root."""

from __future__ import annotations

import mimetypes
import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write bytes to a sibling temp file and rename it over ``path``.

    Readers see either the old or the new content, never a partial write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    try:
        with tmp.open("wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def guess_mime_type(path: Path) -> str | None:
    """Guess a MIME type from the file name."""
    content_type, _ = mimetypes.guess_type(path.name)
    return content_type


def is_temp_file(name: str) -> bool:
    """True for leftovers of an interrupted ``atomic_write_bytes``."""
    return name.startswith(".") and name.endswith(".tmp")
