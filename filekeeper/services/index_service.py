"""Metadata index: file and folder records keyed by (owner, parent, name)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import undefer

from filekeeper.exceptions import DuplicateKey, IndexUnavailable, NotFound
from filekeeper.models import FileRecord, FolderRecord
from filekeeper.services.datetime_service import format_iso, now_utc

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy import Executable, Result, Select
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class FileMetadata:
    """Fields written by ``upsert_file``.

    ``content_snapshot`` is only written when not None, so a stat-driven
    refresh never clears a snapshot captured by an explicit save.
    """

    owner_id: str
    parent_folder_id: int | None
    filename: str
    storage_key: str
    size_bytes: int
    extension: str | None = None
    mime_type: str | None = None
    is_encrypted: bool = False
    content_snapshot: bytes | None = None


@dataclass(frozen=True)
class FileQuery:
    """Selects one file record by id, by storage key, or by natural key."""

    file_id: int | None = None
    storage_key: str | None = None
    owner_id: str | None = None
    parent_folder_id: int | None = None
    filename: str | None = None

    @classmethod
    def by_id(cls, file_id: int) -> FileQuery:
        return cls(file_id=file_id)

    @classmethod
    def by_storage_key(cls, storage_key: str) -> FileQuery:
        return cls(storage_key=storage_key)

    @classmethod
    def by_key(cls, owner_id: str, parent_folder_id: int | None, filename: str) -> FileQuery:
        return cls(owner_id=owner_id, parent_folder_id=parent_folder_id, filename=filename)

    def statement(self) -> Select[tuple[FileRecord]]:
        stmt = select(FileRecord)
        if self.file_id is not None:
            return stmt.where(FileRecord.id == self.file_id)
        if self.storage_key is not None:
            return stmt.where(FileRecord.storage_key == self.storage_key)
        if self.owner_id is None or self.filename is None:
            raise ValueError("FileQuery needs an id, a storage key, or owner and filename")
        return stmt.where(
            FileRecord.owner_id == self.owner_id,
            _parent_clause(FileRecord.parent_folder_id, self.parent_folder_id),
            FileRecord.filename == self.filename,
        )

    def describe(self) -> str:
        if self.file_id is not None:
            return f"id={self.file_id}"
        if self.storage_key is not None:
            return f"storage_key={self.storage_key}"
        return f"owner={self.owner_id} parent={self.parent_folder_id} filename={self.filename}"


def _parent_clause(column, parent_folder_id: int | None):  # type: ignore[no-untyped-def]
    # SQL unique constraints treat NULLs as distinct; root entries match with IS NULL.
    if parent_folder_id is None:
        return column.is_(None)
    return column == parent_folder_id


async def _execute(session: AsyncSession, stmt: Executable, what: str) -> Result[Any]:
    try:
        return await session.execute(stmt)
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateKey(f"Uniqueness violated for {what}") from exc
    except (OperationalError, DBAPIError) as exc:
        await session.rollback()
        raise IndexUnavailable(f"Index read failed for {what}: {exc}") from exc


async def _commit(session: AsyncSession, what: str) -> None:
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise DuplicateKey(f"Uniqueness violated for {what}") from exc
    except (OperationalError, DBAPIError) as exc:
        await session.rollback()
        raise IndexUnavailable(f"Index write failed for {what}: {exc}") from exc


async def find_folder(
    session: AsyncSession, owner_id: str, parent_folder_id: int | None, name: str
) -> FolderRecord | None:
    """Look up a folder by natural key."""
    stmt = select(FolderRecord).where(
        FolderRecord.owner_id == owner_id,
        _parent_clause(FolderRecord.parent_folder_id, parent_folder_id),
        FolderRecord.name == name,
    )
    result = await _execute(session, stmt, f"folder {name!r}")
    return result.scalar_one_or_none()


async def get_folder(session: AsyncSession, folder_id: int) -> FolderRecord:
    """Get a folder by id. Raises NotFound."""
    stmt = select(FolderRecord).where(FolderRecord.id == folder_id)
    result = await _execute(session, stmt, f"folder id={folder_id}")
    folder = result.scalar_one_or_none()
    if folder is None:
        raise NotFound(f"No folder record with id={folder_id}")
    return folder


async def upsert_folder(
    session: AsyncSession, name: str, owner_id: str, parent_folder_id: int | None
) -> int:
    """Return the id of the folder record, creating it if absent."""
    existing = await find_folder(session, owner_id, parent_folder_id, name)
    if existing is not None:
        return existing.id

    stamp = format_iso(now_utc())
    folder = FolderRecord(
        name=name,
        owner_id=owner_id,
        parent_folder_id=parent_folder_id,
        created_at=stamp,
        updated_at=stamp,
    )
    session.add(folder)
    await _commit(session, f"folder {name!r}")
    logger.debug("Indexed folder %s (id=%d, parent=%s)", name, folder.id, parent_folder_id)
    return folder.id


async def list_folders(session: AsyncSession, owner_id: str) -> Sequence[FolderRecord]:
    """List every folder record of an owner."""
    stmt = select(FolderRecord).where(FolderRecord.owner_id == owner_id).order_by(FolderRecord.id)
    result = await _execute(session, stmt, f"folders of {owner_id}")
    return result.scalars().all()


async def upsert_file(session: AsyncSession, metadata: FileMetadata) -> FileRecord:
    """Insert a file record, or merge disk-derived fields into the existing one."""
    query = FileQuery.by_key(metadata.owner_id, metadata.parent_folder_id, metadata.filename)
    result = await _execute(session, query.statement(), f"file {metadata.filename!r}")
    record = result.scalar_one_or_none()
    stamp = format_iso(now_utc())

    if record is None:
        record = FileRecord(
            owner_id=metadata.owner_id,
            parent_folder_id=metadata.parent_folder_id,
            filename=metadata.filename,
            storage_key=metadata.storage_key,
            extension=metadata.extension,
            size_bytes=metadata.size_bytes,
            mime_type=metadata.mime_type,
            is_encrypted=metadata.is_encrypted,
            content_snapshot=metadata.content_snapshot,
            created_at=stamp,
            updated_at=stamp,
        )
        session.add(record)
    else:
        changed = (
            record.storage_key != metadata.storage_key
            or record.size_bytes != metadata.size_bytes
            or record.extension != metadata.extension
            or record.mime_type != metadata.mime_type
            or record.is_encrypted != metadata.is_encrypted
            or metadata.content_snapshot is not None
        )
        if not changed:
            return record
        record.storage_key = metadata.storage_key
        record.size_bytes = metadata.size_bytes
        record.extension = metadata.extension
        record.mime_type = metadata.mime_type
        record.is_encrypted = metadata.is_encrypted
        if metadata.content_snapshot is not None:
            record.content_snapshot = metadata.content_snapshot
        record.updated_at = stamp

    await _commit(session, f"file {metadata.filename!r}")
    return record


async def find_file(session: AsyncSession, query: FileQuery) -> FileRecord:
    """Get the single record matching a query. Raises NotFound."""
    result = await _execute(session, query.statement(), query.describe())
    record = result.scalars().first()
    if record is None:
        raise NotFound(f"No file record with {query.describe()}")
    return record


async def list_files(session: AsyncSession, owner_id: str) -> Sequence[FileRecord]:
    """List every file record of an owner (snapshots not loaded)."""
    stmt = select(FileRecord).where(FileRecord.owner_id == owner_id).order_by(FileRecord.id)
    result = await _execute(session, stmt, f"files of {owner_id}")
    return result.scalars().all()


async def delete_file(session: AsyncSession, query: FileQuery) -> FileRecord:
    """Delete the record matching a query and return it. Raises NotFound."""
    record = await find_file(session, query)
    await session.delete(record)
    await _commit(session, f"file {record.filename!r}")
    return record


async def relocate_file(
    session: AsyncSession,
    record: FileRecord,
    *,
    parent_folder_id: int | None,
    filename: str,
    storage_key: str,
    is_encrypted: bool | None = None,
) -> FileRecord:
    """Point an existing record at a new name, keeping its id and snapshot."""
    query = FileQuery.by_key(record.owner_id, parent_folder_id, filename)
    clash = await _execute(session, query.statement(), query.describe())
    other = clash.scalar_one_or_none()
    if other is not None and other.id != record.id:
        raise DuplicateKey(f"A record for {filename!r} already exists in that folder")

    record.parent_folder_id = parent_folder_id
    record.filename = filename
    record.storage_key = storage_key
    record.extension = extension_of(filename)
    if is_encrypted is not None:
        record.is_encrypted = is_encrypted
    record.updated_at = format_iso(now_utc())
    await _commit(session, f"file {filename!r}")
    return record


async def load_snapshot(session: AsyncSession, file_id: int) -> bytes | None:
    """Explicitly load the deferred content snapshot of a record."""
    stmt = (
        select(FileRecord)
        .where(FileRecord.id == file_id)
        .options(undefer(FileRecord.content_snapshot))
        .execution_options(populate_existing=True)
    )
    result = await _execute(session, stmt, f"snapshot of id={file_id}")
    record = result.scalar_one_or_none()
    if record is None:
        raise NotFound(f"No file record with id={file_id}")
    return record.content_snapshot


def extension_of(filename: str) -> str | None:
    """Return the final suffix of a filename (".txt"), or None."""
    return PurePosixPath(filename).suffix or None
