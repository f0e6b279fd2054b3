"""Tests for atomic writes and storage helpers."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from filekeeper.filesystem.storage import atomic_write_bytes, guess_mime_type, is_temp_file


class TestAtomicWriteBytes:
    def test_writes_new_file_and_parents(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "file.bin"
        atomic_write_bytes(target, b"\x00\x01data")
        assert target.read_bytes() == b"\x00\x01data"

    def test_replaces_existing_content(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_bytes(b"old content that is longer")
        atomic_write_bytes(target, b"new")
        assert target.read_bytes() == b"new"

    def test_failed_replace_keeps_old_content_and_no_temp(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_bytes(b"old")
        with (
            patch("filekeeper.filesystem.storage.os.replace", side_effect=OSError("disk full")),
            pytest.raises(OSError, match="disk full"),
        ):
            atomic_write_bytes(target, b"new")
        assert target.read_bytes() == b"old"
        assert [p.name for p in tmp_path.iterdir()] == ["file.txt"]


class TestHelpers:
    def test_guess_mime_type(self) -> None:
        assert guess_mime_type(Path("notes.txt")) == "text/plain"
        assert guess_mime_type(Path("data.json")) == "application/json"
        assert guess_mime_type(Path("no_extension")) is None

    def test_is_temp_file(self) -> None:
        assert is_temp_file(".notes.txt.tmp")
        assert not is_temp_file("notes.txt")
        assert not is_temp_file("notes.tmp")
