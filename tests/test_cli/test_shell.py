"""Tests for the interactive shell."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import text

from cli.shell import COMMANDS, Shell, build_parser, normalize_file_name, open_store
from filekeeper.exceptions import IndexUnavailable

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine

    from filekeeper.config import Settings
    from filekeeper.services.file_service import FileStore


class ScriptedIO:
    """Feeds canned answers to prompts and collects output lines."""

    def __init__(self, answers: list[str]) -> None:
        self.answers = list(answers)
        self.prompts: list[str] = []
        self.lines: list[str] = []

    def ask(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)

    def out(self, line: str) -> None:
        self.lines.append(line)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def _shell(store: FileStore, answers: list[str]) -> tuple[Shell, ScriptedIO]:
    io = ScriptedIO(answers)
    return Shell(store, ask=io.ask, out=io.out), io


class TestNormalizeFileName:
    @pytest.mark.parametrize(
        ("name", "extension", "expected"),
        [
            ("notes", "", "notes.txt"),
            ("notes", "md", "notes.md"),
            ("notes", ".md", "notes.md"),
            ("notes", "  PY ", "notes.py"),
            ("notes.md", "md", "notes.md"),
            (" notes ", "", "notes.txt"),
        ],
    )
    def test_cases(self, name: str, extension: str, expected: str) -> None:
        assert normalize_file_name(name, extension) == expected


class TestDispatch:
    async def test_create_prompts_for_extension(
        self, store: FileStore, storage_dir: Path
    ) -> None:
        shell, io = _shell(store, ["notes", "", "hello"])

        assert await shell.dispatch("create")

        assert (storage_dir / "notes.txt").read_text() == "hello"
        assert "Created 'notes.txt'" in io.lines
        assert any("Extension?" in prompt for prompt in io.prompts)

    async def test_name_with_suffix_skips_extension_prompt(
        self, store: FileStore, storage_dir: Path
    ) -> None:
        shell, io = _shell(store, ["a.md", "# title"])

        await shell.dispatch("create")

        assert (storage_dir / "a.md").read_text() == "# title"
        assert not any("Extension?" in prompt for prompt in io.prompts)

    async def test_unknown_command(self, store: FileStore) -> None:
        shell, io = _shell(store, [])

        assert not await shell.dispatch("frobnicate")

        assert io.lines[0].startswith("Invalid command: frobnicate")

    async def test_error_is_reported_not_raised(self, store: FileStore) -> None:
        shell, io = _shell(store, ["ghost.txt"])

        assert await shell.dispatch("read")

        assert io.lines == ["Error: 'ghost.txt' not found"]

    async def test_bad_record_id(self, store: FileStore) -> None:
        shell, io = _shell(store, ["abc"])

        await shell.dispatch("read-db")

        assert io.lines == ["Error: 'abc' is not a record id"]

    async def test_rewrite_cancelled(self, store: FileStore) -> None:
        await store.create_file("a.txt", "keep")
        shell, io = _shell(store, ["a.txt", "n"])

        await shell.dispatch("rewrite")

        assert io.lines == ["Operation cancelled."]
        assert store.read_file("a.txt") == "keep"

    async def test_replace_reports_count(self, store: FileStore) -> None:
        await store.create_file("a.txt", "x y x")
        shell, io = _shell(store, ["a.txt", "x", "z"])

        await shell.dispatch("replace")

        assert io.lines == ["Replaced 2 occurrence(s) of 'x'"]
        assert store.read_file("a.txt") == "z y z"

    async def test_bulk_delete_continues_past_missing(self, store: FileStore) -> None:
        await store.create_file("a.txt", "a")
        await store.create_file("c.txt", "c")
        shell, io = _shell(store, ["a.txt, ghost.txt, c.txt"])

        await shell.dispatch("bulk-del")

        assert io.lines[-1] == "Deleted 2 file(s)"
        assert any("ghost.txt" in line for line in io.lines[:-1])

    async def test_list(self, store: FileStore) -> None:
        await store.create_folder("docs")
        await store.create_file("a.txt", "a")
        shell, io = _shell(store, [""])

        await shell.dispatch("list")

        assert io.lines == ["[FILE] a.txt", "[DIR]  docs"]

    async def test_index_round_trip(self, store: FileStore, storage_dir: Path) -> None:
        await store.create_file("a.txt", "precious")
        shell, io = _shell(store, ["a.txt"])
        await shell.dispatch("save-db")
        record_id = int(io.lines[-1].rsplit(" ", 1)[1])

        (storage_dir / "a.txt").unlink()
        shell, io = _shell(store, [str(record_id), str(record_id)])
        await shell.dispatch("verify-db")
        await shell.dispatch("restore-db")

        assert io.lines == ["a.txt: BROKEN (file missing on disk)", "Restored 'a.txt'"]
        assert (storage_dir / "a.txt").read_text() == "precious"

    def test_every_command_has_a_handler(self, store: FileStore) -> None:
        shell, _ = _shell(store, [])
        for method, _description in COMMANDS.values():
            assert callable(getattr(shell, method))


class TestRun:
    async def test_exit_stops_loop(self, store: FileStore) -> None:
        shell, io = _shell(store, ["", "help", "exit", "create"])

        await shell.run()

        assert io.lines[-1] == "Goodbye!"
        assert io.answers == ["create"]

    async def test_quit_is_case_insensitive(self, store: FileStore) -> None:
        shell, io = _shell(store, ["QUIT"])
        await shell.run()
        assert io.lines[-1] == "Goodbye!"

    async def test_end_of_input_stops_loop(self, store: FileStore, storage_dir: Path) -> None:
        shell, io = _shell(store, ["create", "a.txt", "x"])

        await shell.run()

        assert (storage_dir / "a.txt").read_text() == "x"
        assert "Goodbye!" not in io.lines

    async def test_error_does_not_end_session(self, store: FileStore) -> None:
        shell, io = _shell(store, ["delete", "ghost.txt", "bogus", "exit"])

        await shell.run()

        assert "Error: 'ghost.txt' not found" in io.lines
        assert any(line.startswith("Invalid command: bogus") for line in io.lines)
        assert io.lines[-1] == "Goodbye!"


class TestIndexLostMidSession:
    async def test_index_errors_are_reported_and_loop_continues(
        self, store: FileStore, db_engine: AsyncEngine
    ) -> None:
        await store.create_file("a.txt", "still on disk")
        async with db_engine.begin() as conn:
            await conn.execute(text("DROP TABLE files"))
        shell, io = _shell(store, ["read-db", "1", "list-db", "read", "a.txt", "exit"])

        await shell.run()

        errors = [line for line in io.lines if line.startswith("Error:")]
        assert len(errors) == 2
        assert all("Index read failed" in line for line in errors)
        assert "still on disk" in io.lines
        assert io.lines[-1] == "Goodbye!"


class TestStartup:
    async def test_open_store(self, test_settings: Settings) -> None:
        engine, store = await open_store(test_settings)
        try:
            assert store.resolver.backup_dir.is_dir()
            assert await store.list_records() == []
        finally:
            await engine.dispose()

    async def test_unreachable_index(self, test_settings: Settings, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        settings = test_settings.model_copy(
            update={"database_url": f"sqlite+aiosqlite:///{blocker}/index.db"}
        )
        with pytest.raises(IndexUnavailable):
            await open_store(settings)

    def test_parser(self) -> None:
        args = build_parser().parse_args(["-d", "/tmp/x", "--owner", "me", "--debug"])
        assert args.dir == "/tmp/x"
        assert args.owner == "me"
        assert args.debug
        assert args.db is None
