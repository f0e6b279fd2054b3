"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from filekeeper.config import DEFAULT_PASSPHRASE, Settings


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.debug is False
        assert s.storage_dir == Path("./my_files")
        assert s.backup_dir_name == "backups"
        assert s.encrypted_suffix == ".enc"
        assert s.database_url.startswith("sqlite+aiosqlite:///")

    def test_custom_settings(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            storage_dir=tmp_path / "files",
            database_url="sqlite+aiosqlite:///test.db",
            owner_id="alice",
        )
        assert s.storage_dir == tmp_path / "files"
        assert s.backup_dir == tmp_path / "files" / "backups"
        assert s.owner_id == "alice"

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FILEKEEPER_OWNER_ID", "from-env")
        monkeypatch.setenv("FILEKEEPER_ENCRYPTED_SUFFIX", ".locked")
        s = Settings(_env_file=None)
        assert s.owner_id == "from-env"
        assert s.encrypted_suffix == ".locked"

    def test_settings_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.debug is True
        assert test_settings.storage_dir.exists()
        assert test_settings.owner_id == "tester"


class TestValidateRuntimeSecurity:
    def test_default_passphrase_rejected_outside_debug(self) -> None:
        s = Settings(_env_file=None, encryption_passphrase=DEFAULT_PASSPHRASE)
        with pytest.raises(ValueError, match="ENCRYPTION_PASSPHRASE"):
            s.validate_runtime_security()

    def test_default_passphrase_allowed_in_debug(self) -> None:
        Settings(_env_file=None, debug=True).validate_runtime_security()

    def test_empty_suffix_rejected(self) -> None:
        s = Settings(_env_file=None, debug=True, encrypted_suffix="")
        with pytest.raises(ValueError, match="ENCRYPTED_SUFFIX"):
            s.validate_runtime_security()

    def test_nested_backup_dir_rejected(self) -> None:
        s = Settings(_env_file=None, debug=True, backup_dir_name="a/b")
        with pytest.raises(ValueError, match="BACKUP_DIR_NAME"):
            s.validate_runtime_security()
