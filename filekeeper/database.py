"""Database engine and session management."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from filekeeper.exceptions import IndexUnavailable
from filekeeper.models import Base

if TYPE_CHECKING:
    from filekeeper.config import Settings

logger = logging.getLogger(__name__)


def create_engine(
    settings: Settings,
) -> tuple[
    AsyncEngine,
    async_sessionmaker[AsyncSession],
]:
    """Create async engine and session factory.

    Returns (engine, session_factory) tuple.
    """
    db_url = settings.database_url
    if db_url.startswith("sqlite") and "///" in db_url:
        db_path = db_url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(
        db_url,
        echo=settings.debug,
    )
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def check_connection(engine: AsyncEngine) -> None:
    """Round-trip the index once. Raises IndexUnavailable when it cannot be reached."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (OperationalError, DBAPIError, OSError) as exc:
        raise IndexUnavailable(f"Metadata index unreachable: {exc}") from exc


async def ensure_tables(engine: AsyncEngine) -> None:
    """Create the folder and file tables if they don't exist."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except (OperationalError, DBAPIError) as exc:
        raise IndexUnavailable(f"Failed to create index schema: {exc}") from exc
    logger.debug("Index schema ready")
