"""Logical name to on-disk path resolution inside the storage root."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from filekeeper.exceptions import InvalidPath

BACKUP_SUFFIX = ".bak"


@dataclass(frozen=True)
class PathResolver:
    """Maps logical names onto the sandboxed storage root.

    Pure: never touches the filesystem beyond normalising paths.
    """

    storage_dir: Path
    backup_dir_name: str = "backups"

    @property
    def root(self) -> Path:
        return self.storage_dir.resolve()

    @property
    def backup_dir(self) -> Path:
        return self.root / self.backup_dir_name

    def resolve(self, logical_name: str) -> Path:
        """Resolve a logical name to an absolute path under the root.

        The empty name resolves to the root itself. Raises InvalidPath if the
        name escapes the root through ``..`` segments or an absolute path.
        """
        name = logical_name.strip().replace("\\", "/")
        root = self.root
        full_path = (root / name).resolve() if name else root
        if not full_path.is_relative_to(root):
            raise InvalidPath(f"Path escapes storage root: {logical_name}")
        return full_path

    def resolve_backup(self, logical_name: str) -> Path:
        """Return the backup location for a logical name.

        Backups are stored flat: ``docs/a.txt`` and ``a.txt`` share
        ``backups/a.txt.bak``.
        """
        target = self.resolve(logical_name)
        if target == self.root:
            raise InvalidPath("The storage root has no backup location")
        return self.backup_dir / f"{target.name}{BACKUP_SUFFIX}"

    def logical_name(self, path: Path) -> str:
        """Inverse of ``resolve``: the POSIX-style name of a path under the root."""
        full_path = path.resolve()
        root = self.root
        if not full_path.is_relative_to(root):
            raise InvalidPath(f"Path is outside the storage root: {path}")
        return PurePosixPath(full_path.relative_to(root)).as_posix() if full_path != root else ""

    def is_backup_area(self, path: Path) -> bool:
        """True for the backup directory and everything beneath it."""
        return path.resolve().is_relative_to(self.backup_dir)
