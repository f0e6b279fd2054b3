"""Backup vault: one pre-mutation snapshot per logical file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from filekeeper.exceptions import NoBackupAvailable, classify_os_error
from filekeeper.filesystem.storage import atomic_write_bytes

if TYPE_CHECKING:
    from pathlib import Path

    from filekeeper.filesystem.path_resolver import PathResolver

logger = logging.getLogger(__name__)


class BackupVault:
    """Keeps ``<name>.bak`` copies in the flat backup area."""

    def __init__(self, resolver: PathResolver) -> None:
        self.resolver = resolver

    def ensure_backup(self, logical_name: str) -> Path | None:
        """Copy the current bytes of a file over its backup.

        Call before every mutation. A missing source is not an error: there is
        nothing to protect yet, and None is returned.
        """
        source = self.resolver.resolve(logical_name)
        backup_path = self.resolver.resolve_backup(logical_name)
        try:
            data = source.read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            logger.debug("No backup for %s: nothing to protect yet", logical_name)
            return None
        except OSError as exc:
            raise classify_os_error(exc, logical_name) from exc

        try:
            atomic_write_bytes(backup_path, data)
        except OSError as exc:
            raise classify_os_error(exc, backup_path.name) from exc
        logger.info("Backup saved to %s/%s", self.resolver.backup_dir_name, backup_path.name)
        return backup_path

    def has_backup(self, logical_name: str) -> bool:
        return self.resolver.resolve_backup(logical_name).is_file()

    def revert(self, logical_name: str) -> Path:
        """Copy the backup back over the live file.

        The backup is kept, so reverting twice restores the same bytes.
        """
        target = self.resolver.resolve(logical_name)
        backup_path = self.resolver.resolve_backup(logical_name)
        try:
            data = backup_path.read_bytes()
        except FileNotFoundError as exc:
            raise NoBackupAvailable(
                f"No backup found for '{logical_name}' (it has not been edited yet)"
            ) from exc
        except OSError as exc:
            raise classify_os_error(exc, backup_path.name) from exc

        try:
            atomic_write_bytes(target, data)
        except OSError as exc:
            raise classify_os_error(exc, logical_name) from exc
        logger.info("Reverted %s to its last backup", logical_name)
        return target
