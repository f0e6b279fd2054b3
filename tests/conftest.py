"""Shared test fixtures for filekeeper."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from filekeeper.config import Settings
from filekeeper.database import ensure_tables
from filekeeper.filesystem.path_resolver import PathResolver
from filekeeper.services.file_service import FileStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

TEST_PASSPHRASE = "test-passphrase-for-encryption-at-rest"
TEST_OWNER = "tester"


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    """Create a temporary storage root with an empty backup area."""
    root = tmp_path / "my_files"
    root.mkdir()
    (root / "backups").mkdir()
    return root


@pytest.fixture
def test_settings(storage_dir: Path, tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    db_path = tmp_path / "test.db"
    return Settings(
        _env_file=None,
        debug=True,
        database_url=f"sqlite+aiosqlite:///{db_path}",
        storage_dir=storage_dir,
        encryption_passphrase=TEST_PASSPHRASE,
        owner_id=TEST_OWNER,
    )


@pytest.fixture
def resolver(test_settings: Settings) -> PathResolver:
    return PathResolver(test_settings.storage_dir, test_settings.backup_dir_name)


@pytest.fixture
async def db_engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine]:
    """Create a test database engine with the index schema in place."""
    engine = create_async_engine(
        test_settings.database_url,
        echo=False,
    )
    await ensure_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(
    test_settings: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> FileStore:
    """File store over the temporary root and database."""
    file_store = FileStore(test_settings, session_factory)
    file_store.ensure_storage()
    return file_store
