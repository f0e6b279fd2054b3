"""Interactive command shell for filekeeper."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from filekeeper.config import Settings
from filekeeper.database import check_connection, create_engine, ensure_tables
from filekeeper.exceptions import FileStoreError, IndexUnavailable
from filekeeper.services.datetime_service import format_display
from filekeeper.services.file_service import FileStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

AskFn = Callable[[str], str]
OutFn = Callable[[str], None]

# command -> (handler method, description); order is the menu order
COMMANDS: dict[str, tuple[str, str]] = {
    "create": ("cmd_create", "New file"),
    "read": ("cmd_read", "Read content"),
    "append": ("cmd_append", "Add data"),
    "delete": ("cmd_delete", "Delete file"),
    "bulk-del": ("cmd_bulk_delete", "Delete several files"),
    "rename": ("cmd_rename", "Rename file"),
    "copy": ("cmd_copy", "Copy file"),
    "move": ("cmd_move", "Move file into a folder"),
    "info": ("cmd_info", "File details"),
    "stats": ("cmd_stats", "Count lines, words and characters"),
    "rewrite": ("cmd_rewrite", "Overwrite all"),
    "replace": ("cmd_replace", "Find and replace"),
    "clear": ("cmd_clear", "Empty file"),
    "revert": ("cmd_revert", "Undo last change"),
    "mkdir": ("cmd_mkdir", "New folder"),
    "rmdir": ("cmd_rmdir", "Delete folder"),
    "list": ("cmd_list", "List folder"),
    "tree": ("cmd_tree", "Show folder tree"),
    "encrypt": ("cmd_encrypt", "Encrypt file"),
    "decrypt": ("cmd_decrypt", "Decrypt file"),
    "sync-db": ("cmd_sync_db", "Index every file on disk"),
    "save-db": ("cmd_save_db", "Save file metadata and snapshot"),
    "list-db": ("cmd_list_db", "List indexed files"),
    "read-db": ("cmd_read_db", "Read file by record id"),
    "verify-db": ("cmd_verify_db", "Check a record's backing file"),
    "clean-db": ("cmd_clean_db", "Remove orphaned records"),
    "restore-db": ("cmd_restore_db", "Restore one file from its snapshot"),
    "full-restore": ("cmd_full_restore", "Restore all missing files from snapshots"),
    "help": ("cmd_help", "Show commands"),
}

EXIT_COMMANDS = {"exit", "quit"}


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def normalize_file_name(name: str, extension: str, default_ext: str = "txt") -> str:
    """Apply the extension prompt: blank means ``default_ext``; a dot is optional.

    A name that already ends with the chosen extension is kept as is.
    """
    ext = extension.strip().lower() or default_ext
    if not ext.startswith("."):
        ext = f".{ext}"
    name = name.strip()
    if name.lower().endswith(ext):
        return name
    return f"{name}{ext}"


class Shell:
    """Reads commands, dispatches them to the file store, reports outcomes."""

    def __init__(self, store: FileStore, ask: AskFn = input, out: OutFn = print) -> None:
        self.store = store
        self._ask = ask
        self.out = out

    def ask(self, prompt: str) -> str:
        return self._ask(f"{prompt} ").strip()

    def ask_file_name(self, prompt: str, default_ext: str = "txt") -> str:
        name = self.ask(prompt)
        if Path(name).suffix:
            return name
        extension = self.ask(f"Extension? [Enter for .{default_ext}]:")
        return normalize_file_name(name, extension, default_ext)

    def ask_id(self, prompt: str) -> int:
        raw = self.ask(prompt)
        try:
            return int(raw)
        except ValueError as exc:
            raise FileStoreError(f"'{raw}' is not a record id") from exc

    def confirm(self, prompt: str) -> bool:
        return self.ask(f"{prompt} (y/n):").lower() == "y"

    async def run(self) -> None:
        self.out("--- filekeeper ---")
        self.cmd_help()
        while True:
            try:
                command = self.ask("\nCommand:").lower()
            except EOFError:
                break
            if command in EXIT_COMMANDS:
                self.out("Goodbye!")
                break
            if not command:
                continue
            await self.dispatch(command)

    async def dispatch(self, command: str) -> bool:
        """Run one command. Returns False for unknown commands."""
        entry = COMMANDS.get(command)
        if entry is None:
            self.out(f"Invalid command: {command}. Type 'help' for the list.")
            return False
        handler: Callable[[], Awaitable[None] | None] = getattr(self, entry[0])
        try:
            result = handler()
            if result is not None:
                await result
        except FileStoreError as exc:
            logger.debug("Command %s failed", command, exc_info=True)
            self.out(f"Error: {exc}")
        return True

    # -- handlers -----------------------------------------------------------

    def cmd_help(self) -> None:
        self.out("Commands: " + ", ".join([*COMMANDS, "exit"]))

    async def cmd_create(self) -> None:
        name = self.ask_file_name("File name:")
        content = self.ask("Content:")
        await self.store.create_file(name, content)
        self.out(f"Created '{name}'")

    def cmd_read(self) -> None:
        name = self.ask_file_name("File to read:")
        self.out(self.store.read_file(name))

    async def cmd_append(self) -> None:
        name = self.ask_file_name("File to append to:")
        content = self.ask("Content to append:")
        await self.store.append_file(name, content)
        self.out(f"Appended to '{name}'")

    async def cmd_delete(self) -> None:
        name = self.ask_file_name("File to delete:")
        await self.store.delete_file(name)
        self.out(f"Deleted '{name}'")

    async def cmd_bulk_delete(self) -> None:
        names = [n.strip() for n in self.ask("Files to delete (comma separated):").split(",")]
        deleted = 0
        for name in filter(None, names):
            try:
                await self.store.delete_file(name)
                deleted += 1
            except FileStoreError as exc:
                self.out(f"  Skip {name}: {exc}")
        self.out(f"Deleted {deleted} file(s)")

    async def cmd_rename(self) -> None:
        old = self.ask_file_name("Current name:")
        new = self.ask_file_name("New name:")
        await self.store.rename_file(old, new)
        self.out(f"Renamed '{old}' to '{new}'")

    async def cmd_copy(self) -> None:
        source = self.ask_file_name("Source file:")
        dest = self.ask_file_name("Copy name:")
        await self.store.copy_file(source, dest)
        self.out(f"Copied '{source}' to '{dest}'")

    async def cmd_move(self) -> None:
        name = self.ask_file_name("File to move:")
        folder = self.ask("Destination folder:")
        await self.store.move_file(name, folder)
        self.out(f"Moved '{name}' to '{folder}/'")

    def cmd_info(self) -> None:
        name = self.ask_file_name("File name:")
        info = self.store.file_info(name)
        self.out(f"Size: {info.size_bytes / 1024:.2f} KB")
        self.out(f"Created: {format_display(info.created_at)}")
        self.out(f"Modified: {format_display(info.modified_at)}")
        self.out(f"Permissions: {oct(info.mode & 0o777)}")

    def cmd_stats(self) -> None:
        name = self.ask_file_name("File to analyze:")
        stats = self.store.file_stats(name)
        self.out(f"Lines: {stats.lines}")
        self.out(f"Words: {stats.words}")
        self.out(f"Characters: {stats.characters}")

    async def cmd_rewrite(self) -> None:
        name = self.ask_file_name("File to overwrite:")
        if not self.confirm("Old content will be replaced. Are you sure?"):
            self.out("Operation cancelled.")
            return
        await self.store.overwrite_file(name, self.ask("New content:"))
        self.out(f"Rewrote '{name}'")

    async def cmd_replace(self) -> None:
        name = self.ask_file_name("File to edit:")
        old = self.ask("Text to replace:")
        new = self.ask("Replacement:")
        count = await self.store.replace_text(name, old, new)
        self.out(f"Replaced {count} occurrence(s) of '{old}'")

    async def cmd_clear(self) -> None:
        name = self.ask_file_name("File to empty:")
        if not self.confirm("Are you sure?"):
            self.out("Operation cancelled.")
            return
        await self.store.clear_file(name)
        self.out(f"Cleared '{name}'")

    async def cmd_revert(self) -> None:
        name = self.ask_file_name("File to revert:")
        await self.store.revert_file(name)
        self.out(f"Reverted '{name}' to its last backup")

    async def cmd_mkdir(self) -> None:
        name = self.ask("Folder name:")
        await self.store.create_folder(name)
        self.out(f"Created folder '{name}'")

    async def cmd_rmdir(self) -> None:
        name = self.ask("Folder to delete:")
        recursive = self.confirm("Delete everything inside too?")
        await self.store.delete_folder(name, recursive=recursive)
        self.out(f"Deleted folder '{name}'")

    def cmd_list(self) -> None:
        name = self.ask("Folder (Enter for root):")
        entries = self.store.list_dir(name)
        if not entries:
            self.out("Empty directory")
        for entry in entries:
            self.out(f"{'[DIR] ' if entry.is_dir else '[FILE]'} {entry.name}")

    def cmd_tree(self) -> None:
        lines = self.store.tree()
        self.out("\n".join(lines) if lines else "Empty directory")

    async def cmd_encrypt(self) -> None:
        name = self.ask_file_name("File to encrypt:")
        path = await self.store.encrypt(name)
        self.out(f"Encrypted to '{path.name}'")

    async def cmd_decrypt(self) -> None:
        name = self.ask("Encrypted file:")
        path = await self.store.decrypt(name)
        self.out(f"Decrypted to '{path.name}'")

    async def cmd_sync_db(self) -> None:
        report = await self.store.sync()
        self.out(
            f"Synced {report.folders_indexed} folder(s) and {report.files_indexed} file(s)"
        )
        for error in report.errors:
            self.out(f"  Warning: {error}")

    async def cmd_save_db(self) -> None:
        name = self.ask_file_name("File to save:")
        record = await self.store.save_metadata(name)
        self.out(f"Saved '{name}' as record {record.id}")

    async def cmd_list_db(self) -> None:
        records = await self.store.list_records()
        if not records:
            self.out("(no records)")
        for record in records:
            lock = " [encrypted]" if record.is_encrypted else ""
            self.out(f"{record.id}\t{record.filename}\t{record.size_bytes} bytes{lock}")

    async def cmd_read_db(self) -> None:
        self.out(await self.store.read_record(self.ask_id("Record id:")))

    async def cmd_verify_db(self) -> None:
        status = await self.store.verify(self.ask_id("Record id:"))
        state = "OK" if status.healthy else "BROKEN (file missing on disk)"
        self.out(f"{status.filename}: {state}")

    async def cmd_clean_db(self) -> None:
        removed = await self.store.clean()
        self.out(f"Removed {removed} orphaned record(s)")

    async def cmd_restore_db(self) -> None:
        path = await self.store.restore(self.ask_id("Record id:"))
        self.out(f"Restored '{path.name}'")

    async def cmd_full_restore(self) -> None:
        restored = await self.store.full_restore()
        for path in restored:
            self.out(f"  Restored {path.name}")
        self.out(f"Restored {len(restored)} file(s)")


async def open_store(settings: Settings) -> tuple[AsyncEngine, FileStore]:
    """Connect to the index and prepare the storage root. Raises IndexUnavailable."""
    try:
        engine, session_factory = create_engine(settings)
    except OSError as exc:
        raise IndexUnavailable(f"Cannot prepare the index location: {exc}") from exc
    try:
        await check_connection(engine)
        await ensure_tables(engine)
    except IndexUnavailable:
        await engine.dispose()
        raise
    store = FileStore(settings, session_factory)
    store.ensure_storage()
    return engine, store


async def _run(settings: Settings) -> int:
    try:
        engine, store = await open_store(settings)
    except IndexUnavailable as exc:
        logger.critical("%s. Check the database URL and that the store is running.", exc)
        return 1
    logger.info("Storage root: %s", store.resolver.root)
    try:
        await Shell(store).run()
    finally:
        await engine.dispose()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filekeeper",
        description="File manager with a synchronized metadata index",
    )
    parser.add_argument("--dir", "-d", help="Storage directory")
    parser.add_argument("--db", help="Database URL (SQLAlchemy async)")
    parser.add_argument("--owner", help="Owner id for indexed records")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


def main() -> None:
    """CLI entry point."""
    args = build_parser().parse_args()
    overrides: dict[str, object] = {}
    if args.dir:
        overrides["storage_dir"] = Path(args.dir)
    if args.db:
        overrides["database_url"] = args.db
    if args.owner:
        overrides["owner_id"] = args.owner
    if args.debug:
        overrides["debug"] = True

    try:
        settings = Settings(**overrides)  # type: ignore[arg-type]
        settings.validate_runtime_security()
    except (ValidationError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    _configure_logging(settings.debug)
    sys.exit(asyncio.run(_run(settings)))


if __name__ == "__main__":
    main()
