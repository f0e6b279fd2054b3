"""Sync engine: derive folder and file records from the on-disk tree."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from filekeeper.exceptions import FileStoreError, InvalidPath, NotFound
from filekeeper.filesystem.storage import guess_mime_type, is_temp_file
from filekeeper.services.index_service import FileMetadata, extension_of, upsert_file, upsert_folder

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from filekeeper.filesystem.path_resolver import PathResolver

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one ``sync_tree`` walk."""

    folders_indexed: int = 0
    files_indexed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def file_metadata(
    path: Path,
    *,
    owner_id: str,
    parent_folder_id: int | None,
    encrypted_suffix: str | None = None,
    content_snapshot: bytes | None = None,
) -> FileMetadata:
    """Build index fields for a file from a fresh stat."""
    stat = path.stat()
    return FileMetadata(
        owner_id=owner_id,
        parent_folder_id=parent_folder_id,
        filename=path.name,
        storage_key=str(path),
        size_bytes=stat.st_size,
        extension=extension_of(path.name),
        mime_type=guess_mime_type(path),
        is_encrypted=bool(encrypted_suffix) and path.name.endswith(encrypted_suffix),
        content_snapshot=content_snapshot,
    )


async def sync_tree(
    session: AsyncSession,
    resolver: PathResolver,
    root_name: str,
    owner_id: str,
    parent_folder_id: int | None = None,
    *,
    encrypted_suffix: str | None = None,
) -> SyncReport:
    """Walk the tree under a logical folder depth-first and upsert every entry.

    Entries directly under ``root_name`` are scoped to ``parent_folder_id``.
    Each subdirectory's folder record is written before anything inside it.
    A failure on one entry is recorded in the report and its siblings are
    still processed. The backup area and symlinks are never indexed.
    """
    root = resolver.resolve(root_name)
    if not root.exists():
        raise NotFound(f"Folder '{root_name}' not found")
    if not root.is_dir():
        raise InvalidPath(f"'{root_name}' is not a folder")

    report = SyncReport()

    async def record_failure(path: Path, exc: Exception) -> None:
        if isinstance(exc, SQLAlchemyError):
            await session.rollback()
        msg = f"Skipping {path}: {exc}"
        logger.warning(msg)
        report.errors.append(msg)

    async def walk(directory: Path, parent_id: int | None) -> None:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as exc:
            await record_failure(directory, exc)
            return

        for entry in entries:
            path = Path(entry.path)
            if resolver.is_backup_area(path) or is_temp_file(entry.name):
                continue
            if entry.is_symlink():
                logger.debug("Not following symlink %s", path)
                continue
            if entry.is_dir(follow_symlinks=False):
                try:
                    folder_id = await upsert_folder(session, entry.name, owner_id, parent_id)
                except (FileStoreError, SQLAlchemyError) as exc:
                    await record_failure(path, exc)
                    continue
                report.folders_indexed += 1
                await walk(path, folder_id)
            elif entry.is_file():
                try:
                    metadata = file_metadata(
                        path,
                        owner_id=owner_id,
                        parent_folder_id=parent_id,
                        encrypted_suffix=encrypted_suffix,
                    )
                    await upsert_file(session, metadata)
                except (OSError, FileStoreError, SQLAlchemyError) as exc:
                    await record_failure(path, exc)
                    continue
                report.files_indexed += 1

    await walk(root, parent_folder_id)
    logger.info(
        "Synced %s: %d folders, %d files, %d errors",
        root_name or ".",
        report.folders_indexed,
        report.files_indexed,
        len(report.errors),
    )
    return report
