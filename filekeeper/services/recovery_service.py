"""Recovery of file bytes from snapshots retained in the index."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from filekeeper.exceptions import (
    FileStoreError,
    IndexUnavailable,
    InvalidPath,
    NoSnapshotAvailable,
    classify_os_error,
)
from filekeeper.filesystem.storage import atomic_write_bytes
from filekeeper.services.audit_service import backing_file_exists
from filekeeper.services.index_service import FileQuery, find_file, list_files, load_snapshot

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from filekeeper.filesystem.path_resolver import PathResolver

logger = logging.getLogger(__name__)


async def restore_from_snapshot(
    session: AsyncSession, resolver: PathResolver, file_id: int
) -> Path:
    """Write a record's snapshot back to disk and return the path written.

    Falls back to the resolver's location for the filename when the record
    has no storage key. Refuses to write outside the storage root.
    Independent of the backup vault.
    """
    record = await find_file(session, FileQuery.by_id(file_id))
    snapshot = await load_snapshot(session, file_id)
    if snapshot is None:
        raise NoSnapshotAvailable(f"No snapshot saved for '{record.filename}' (id={file_id})")

    target = Path(record.storage_key) if record.storage_key else resolver.resolve(record.filename)
    if not target.resolve().is_relative_to(resolver.root):
        raise InvalidPath(f"Record {file_id} points outside the storage root")
    try:
        atomic_write_bytes(target, snapshot)
    except OSError as exc:
        raise classify_os_error(exc, record.filename) from exc
    logger.info("Restored %s from snapshot (%d bytes)", target, len(snapshot))
    return target


async def restore_missing(
    session: AsyncSession, resolver: PathResolver, owner_id: str
) -> list[Path]:
    """Restore every record of an owner whose file is missing and has a snapshot.

    A record that cannot be restored is logged and skipped; only index
    failures abort the run.
    """
    restored: list[Path] = []
    for record in await list_files(session, owner_id):
        if backing_file_exists(record):
            continue
        try:
            restored.append(await restore_from_snapshot(session, resolver, record.id))
        except NoSnapshotAvailable:
            logger.warning("Cannot restore %s: no snapshot saved", record.filename)
        except IndexUnavailable:
            raise
        except FileStoreError as exc:
            logger.warning("Cannot restore %s: %s", record.filename, exc)
    return restored
