"""Tests for database engine and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import create_async_engine

from filekeeper.config import Settings
from filekeeper.database import check_connection, create_engine
from filekeeper.exceptions import IndexUnavailable

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession


class TestDatabase:
    async def test_engine_connects(self, db_engine: AsyncEngine) -> None:
        async with db_engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            assert result.scalar() == 1

    async def test_session_works(self, db_session: AsyncSession) -> None:
        result = await db_session.execute(text("SELECT 42"))
        assert result.scalar() == 42

    async def test_tables_created(self, db_engine: AsyncEngine) -> None:
        async with db_engine.connect() as conn:
            names = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        assert {"files", "folders"} <= set(names)

    async def test_create_engine_makes_database_directory(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "dir" / "index.db"
        settings = Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{db_path}")
        engine, session_factory = create_engine(settings)
        try:
            assert db_path.parent.is_dir()
            async with session_factory() as session:
                assert (await session.execute(text("SELECT 1"))).scalar() == 1
        finally:
            await engine.dispose()


class TestCheckConnection:
    async def test_reachable_index(self, db_engine: AsyncEngine) -> None:
        await check_connection(db_engine)

    async def test_unreachable_index_raises(self, tmp_path: Path) -> None:
        missing = tmp_path / "no-such-dir" / "index.db"
        engine = create_async_engine(f"sqlite+aiosqlite:///{missing}")
        try:
            with pytest.raises(IndexUnavailable):
                await check_connection(engine)
        finally:
            await engine.dispose()
