"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_PASSPHRASE = "change-me-in-production"


class Settings(BaseSettings):
    """Filekeeper settings."""

    model_config = SettingsConfigDict(
        env_prefix="FILEKEEPER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Metadata index
    database_url: str = "sqlite+aiosqlite:///data/filekeeper.db"

    # Storage
    storage_dir: Path = Path("./my_files")
    backup_dir_name: str = "backups"

    # Encryption at rest
    encryption_passphrase: str = DEFAULT_PASSPHRASE
    encrypted_suffix: str = ".enc"

    # Records created by this process belong to this owner
    owner_id: str = "local"

    @property
    def backup_dir(self) -> Path:
        return self.storage_dir / self.backup_dir_name

    def validate_runtime_security(self) -> None:
        """Validate settings that would corrupt the store or weaken encryption."""
        violations: list[str] = []
        if not self.encrypted_suffix:
            violations.append("ENCRYPTED_SUFFIX must not be empty")
        if not self.backup_dir_name or "/" in self.backup_dir_name or "\\" in self.backup_dir_name:
            violations.append("BACKUP_DIR_NAME must be a single directory name")
        if not self.debug and self.encryption_passphrase == DEFAULT_PASSPHRASE:
            violations.append("ENCRYPTION_PASSPHRASE must be overridden outside debug mode")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure configuration: {joined}")
