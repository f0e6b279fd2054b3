"""File store: user-facing file operations that keep the index in step with disk.

Every mutating operation resolves the logical name, changes the disk, and then
upserts (or removes) the matching index record. Edits that destroy content
take a backup first.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

from filekeeper.exceptions import (
    AlreadyExists,
    BrokenLink,
    DuplicateKey,
    FileStoreError,
    InvalidPath,
    NotFound,
    classify_os_error,
)
from filekeeper.filesystem.path_resolver import PathResolver
from filekeeper.filesystem.storage import atomic_write_bytes
from filekeeper.services import index_service
from filekeeper.services.audit_service import LinkStatus, audit_all, verify_link
from filekeeper.services.backup_service import BackupVault
from filekeeper.services.crypto_service import EncryptionCodec
from filekeeper.services.datetime_service import from_timestamp
from filekeeper.services.index_service import FileQuery
from filekeeper.services.recovery_service import restore_from_snapshot, restore_missing
from filekeeper.services.sync_service import SyncReport, file_metadata, sync_tree

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from filekeeper.config import Settings
    from filekeeper.models import FileRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirEntry:
    name: str
    is_dir: bool


@dataclass(frozen=True)
class FileInfo:
    size_bytes: int
    created_at: datetime
    modified_at: datetime
    mode: int


@dataclass(frozen=True)
class FileStats:
    lines: int
    words: int
    characters: int


class FileStore:
    """Storage root plus metadata index for a single owner."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self.settings = settings
        self.session_factory = session_factory
        self.owner_id = settings.owner_id
        self.resolver = PathResolver(settings.storage_dir, settings.backup_dir_name)
        self.vault = BackupVault(self.resolver)
        self.codec = EncryptionCodec(
            self.resolver, settings.encryption_passphrase, settings.encrypted_suffix
        )

    def ensure_storage(self) -> None:
        """Create the storage root and backup area if missing."""
        root = self.settings.storage_dir
        if root.exists() and not root.is_dir():
            msg = f"Storage path exists but is not a directory: {root}"
            raise NotADirectoryError(msg)
        self.resolver.backup_dir.mkdir(parents=True, exist_ok=True)

    # -- index bookkeeping -------------------------------------------------

    async def _folder_chain(self, session: AsyncSession, directory: Path) -> int | None:
        """Upsert folder records from the root down to ``directory``; return the last id."""
        parent_id: int | None = None
        rel = self.resolver.logical_name(directory)
        for part in rel.split("/") if rel else []:
            parent_id = await index_service.upsert_folder(session, part, self.owner_id, parent_id)
        return parent_id

    async def _refresh(
        self, session: AsyncSession, path: Path, snapshot: bytes | None = None
    ) -> FileRecord | None:
        outside_root = not path.resolve().is_relative_to(self.resolver.root)
        if outside_root or self.resolver.is_backup_area(path):
            return None
        parent_id = await self._folder_chain(session, path.parent)
        try:
            metadata = file_metadata(
                path,
                owner_id=self.owner_id,
                parent_folder_id=parent_id,
                encrypted_suffix=self.settings.encrypted_suffix,
                content_snapshot=snapshot,
            )
        except OSError as exc:
            raise classify_os_error(exc, path.name) from exc
        return await index_service.upsert_file(session, metadata)

    async def _forget(self, session: AsyncSession, path: Path) -> None:
        try:
            await index_service.delete_file(session, FileQuery.by_storage_key(str(path)))
        except NotFound:
            logger.debug("No index record for %s", path)

    async def _forget_under(self, session: AsyncSession, directory: Path) -> None:
        for record in await index_service.list_files(session, self.owner_id):
            if Path(record.storage_key).is_relative_to(directory):
                await index_service.delete_file(session, FileQuery.by_id(record.id))

    async def _move_record(self, session: AsyncSession, old: Path, new: Path) -> None:
        try:
            record = await index_service.find_file(session, FileQuery.by_storage_key(str(old)))
        except NotFound:
            record = None
        if record is not None:
            try:
                await index_service.relocate_file(
                    session,
                    record,
                    parent_folder_id=await self._folder_chain(session, new.parent),
                    filename=new.name,
                    storage_key=str(new),
                    is_encrypted=self.codec.is_encrypted_name(new.name),
                )
            except DuplicateKey:
                # A stale record already claims the new name; it wins and the old one goes.
                await index_service.delete_file(session, FileQuery.by_id(record.id))
        await self._refresh(session, new)

    def _user_path(self, logical_name: str) -> Path:
        path = self.resolver.resolve(logical_name)
        if self.resolver.is_backup_area(path):
            raise InvalidPath(f"'{logical_name}' is inside the reserved backup area")
        return path

    def _existing_file(self, logical_name: str) -> Path:
        path = self._user_path(logical_name)
        if not path.is_file():
            raise NotFound(f"'{logical_name}' not found")
        return path

    # -- core file operations ---------------------------------------------

    async def create_file(self, logical_name: str, content: str | bytes) -> Path:
        path = self._user_path(logical_name)
        if path.exists():
            raise AlreadyExists(f"'{logical_name}' already exists")
        data = content.encode("utf-8") if isinstance(content, str) else content
        try:
            atomic_write_bytes(path, data)
        except OSError as exc:
            raise classify_os_error(exc, logical_name) from exc
        async with self.session_factory() as session:
            await self._refresh(session, path)
        logger.info("Created %s", logical_name)
        return path

    def read_file(self, logical_name: str) -> str:
        path = self._existing_file(logical_name)
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise classify_os_error(exc, logical_name) from exc

    async def _rewrite(self, logical_name: str, path: Path, data: bytes) -> None:
        self.vault.ensure_backup(logical_name)
        try:
            atomic_write_bytes(path, data)
        except OSError as exc:
            raise classify_os_error(exc, logical_name) from exc
        async with self.session_factory() as session:
            await self._refresh(session, path)

    async def append_file(self, logical_name: str, content: str) -> Path:
        path = self._user_path(logical_name)
        existing = path.read_bytes() if path.is_file() else b""
        separator = b"\n" if existing else b""
        await self._rewrite(logical_name, path, existing + separator + content.encode("utf-8"))
        logger.info("Appended to %s", logical_name)
        return path

    async def replace_text(self, logical_name: str, old: str, new: str) -> int:
        """Replace every occurrence of ``old``; return the number replaced."""
        if not old:
            raise FileStoreError("Text to replace must not be empty")
        text = self.read_file(logical_name)
        count = text.count(old)
        if count == 0:
            raise NotFound(f"Text '{old}' not found in '{logical_name}'")
        path = self._user_path(logical_name)
        await self._rewrite(logical_name, path, text.replace(old, new).encode("utf-8"))
        logger.info("Replaced %d occurrence(s) in %s", count, logical_name)
        return count

    async def overwrite_file(self, logical_name: str, content: str) -> Path:
        path = self._existing_file(logical_name)
        await self._rewrite(logical_name, path, content.encode("utf-8"))
        logger.info("Rewrote %s", logical_name)
        return path

    async def clear_file(self, logical_name: str) -> Path:
        path = self._existing_file(logical_name)
        await self._rewrite(logical_name, path, b"")
        logger.info("Cleared %s", logical_name)
        return path

    async def revert_file(self, logical_name: str) -> Path:
        self._user_path(logical_name)
        path = self.vault.revert(logical_name)
        async with self.session_factory() as session:
            await self._refresh(session, path)
        return path

    async def rename_file(self, old_name: str, new_name: str) -> Path:
        source = self._existing_file(old_name)
        target = self._user_path(new_name)
        if target.exists():
            raise AlreadyExists(f"'{new_name}' already exists")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            source.rename(target)
        except OSError as exc:
            raise classify_os_error(exc, old_name) from exc
        async with self.session_factory() as session:
            await self._move_record(session, source, target)
        logger.info("Renamed %s -> %s", old_name, new_name)
        return target

    async def move_file(self, logical_name: str, folder_name: str) -> Path:
        folder = self.resolver.resolve(folder_name)
        if not folder.is_dir():
            raise NotFound(f"Folder '{folder_name}' not found")
        source = self._existing_file(logical_name)
        target_name = self.resolver.logical_name(folder / source.name)
        return await self.rename_file(logical_name, target_name)

    async def copy_file(self, source_name: str, dest_name: str) -> Path:
        source = self._existing_file(source_name)
        target = self._user_path(dest_name)
        try:
            data = source.read_bytes()
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("xb") as f:
                f.write(data)
        except OSError as exc:
            raise classify_os_error(exc, dest_name) from exc
        async with self.session_factory() as session:
            await self._refresh(session, target)
        logger.info("Copied %s -> %s", source_name, dest_name)
        return target

    async def delete_file(self, logical_name: str) -> None:
        path = self._existing_file(logical_name)
        try:
            path.unlink()
        except OSError as exc:
            raise classify_os_error(exc, logical_name) from exc
        async with self.session_factory() as session:
            await self._forget(session, path)
        logger.info("Deleted %s", logical_name)

    # -- folders ------------------------------------------------------------

    def _user_folder(self, folder_name: str) -> Path:
        path = self._user_path(folder_name)
        if path == self.resolver.root:
            raise InvalidPath("The storage root cannot be created or deleted")
        return path

    async def create_folder(self, folder_name: str) -> Path:
        path = self._user_folder(folder_name)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise classify_os_error(exc, folder_name) from exc
        async with self.session_factory() as session:
            await self._folder_chain(session, path)
        logger.info("Created folder %s", folder_name)
        return path

    async def delete_folder(self, folder_name: str, *, recursive: bool = False) -> None:
        """Delete a folder from disk and drop the file records beneath it.

        Folder records are kept; they carry no lifetime of their own.
        """
        path = self._user_folder(folder_name)
        if not path.is_dir():
            raise NotFound(f"Folder '{folder_name}' not found")
        try:
            if recursive:
                shutil.rmtree(path)
            else:
                path.rmdir()
        except OSError as exc:
            raise classify_os_error(exc, folder_name) from exc
        async with self.session_factory() as session:
            await self._forget_under(session, path)
        logger.info("Deleted folder %s", folder_name)

    def list_dir(self, folder_name: str = "") -> list[DirEntry]:
        path = self.resolver.resolve(folder_name)
        if not path.is_dir():
            raise NotFound(f"Folder '{folder_name}' not found")
        return [
            DirEntry(name=child.name, is_dir=child.is_dir())
            for child in sorted(path.iterdir(), key=lambda p: p.name)
            if not self.resolver.is_backup_area(child)
        ]

    def tree(self, folder_name: str = "") -> list[str]:
        """Indented listing of a folder, directories suffixed with '/'."""
        lines: list[str] = []

        def walk(rel: str, depth: int) -> None:
            for entry in self.list_dir(rel):
                lines.append(f"{'  ' * depth}{entry.name}{'/' if entry.is_dir else ''}")
                if entry.is_dir:
                    walk(f"{rel}/{entry.name}" if rel else entry.name, depth + 1)

        walk(folder_name, 0)
        return lines

    # -- details ------------------------------------------------------------

    def file_info(self, logical_name: str) -> FileInfo:
        stat = self._existing_file(logical_name).stat()
        created = getattr(stat, "st_birthtime", stat.st_ctime)
        return FileInfo(
            size_bytes=stat.st_size,
            created_at=from_timestamp(created),
            modified_at=from_timestamp(stat.st_mtime),
            mode=stat.st_mode,
        )

    def file_stats(self, logical_name: str) -> FileStats:
        text = self.read_file(logical_name)
        return FileStats(
            lines=len(text.split("\n")),
            words=len(text.split()),
            characters=len(text),
        )

    # -- encryption ---------------------------------------------------------

    async def encrypt(self, logical_name: str) -> Path:
        source = self._user_path(logical_name)
        target = self.codec.encrypt(logical_name)
        async with self.session_factory() as session:
            await self._move_record(session, source, target)
        return target

    async def decrypt(self, logical_name: str) -> Path:
        source = self._user_path(logical_name)
        target = self.codec.decrypt(logical_name)
        async with self.session_factory() as session:
            await self._move_record(session, source, target)
        return target

    # -- index operations ---------------------------------------------------

    async def sync(self, folder_name: str = "") -> SyncReport:
        root = self.resolver.resolve(folder_name)
        if not root.is_dir():
            raise NotFound(f"Folder '{folder_name}' not found")
        async with self.session_factory() as session:
            parent_id = await self._folder_chain(session, root)
            return await sync_tree(
                session,
                self.resolver,
                folder_name,
                self.owner_id,
                parent_id,
                encrypted_suffix=self.settings.encrypted_suffix,
            )

    async def save_metadata(self, logical_name: str) -> FileRecord:
        """Index a file and capture its current bytes as the record's snapshot."""
        path = self._existing_file(logical_name)
        try:
            snapshot = path.read_bytes()
        except OSError as exc:
            raise classify_os_error(exc, logical_name) from exc
        async with self.session_factory() as session:
            record = await self._refresh(session, path, snapshot=snapshot)
        if record is None:
            raise InvalidPath(f"'{logical_name}' is outside the indexed area")
        logger.info("Saved metadata and snapshot for %s (id=%d)", logical_name, record.id)
        return record

    async def list_records(self) -> Sequence[FileRecord]:
        async with self.session_factory() as session:
            return await index_service.list_files(session, self.owner_id)

    async def read_record(self, file_id: int) -> str:
        """Read the disk file a record points at. Raises BrokenLink if it is gone.

        A storage key that resolves outside the root (a symlink, or a record
        written by another root) raises InvalidPath.
        """
        async with self.session_factory() as session:
            record = await index_service.find_file(session, FileQuery.by_id(file_id))
        path = Path(record.storage_key)
        if not path.resolve().is_relative_to(self.resolver.root):
            raise InvalidPath(f"Record {file_id} points outside the storage root")
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError as exc:
            raise BrokenLink(
                f"Record {file_id} ({record.filename}) points at missing {record.storage_key}"
            ) from exc
        except OSError as exc:
            raise classify_os_error(exc, record.filename) from exc

    async def verify(self, file_id: int) -> LinkStatus:
        async with self.session_factory() as session:
            return await verify_link(session, file_id)

    async def clean(self) -> int:
        async with self.session_factory() as session:
            return await audit_all(session, self.owner_id)

    async def restore(self, file_id: int) -> Path:
        async with self.session_factory() as session:
            path = await restore_from_snapshot(session, self.resolver, file_id)
            await self._refresh(session, path)
        return path

    async def full_restore(self) -> list[Path]:
        async with self.session_factory() as session:
            restored = await restore_missing(session, self.resolver, self.owner_id)
            for path in restored:
                await self._refresh(session, path)
        return restored
