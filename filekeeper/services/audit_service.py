"""Consistency auditor: find and prune records whose backing file is gone."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

from filekeeper.exceptions import NotFound
from filekeeper.services.index_service import FileQuery, delete_file, find_file, list_files

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from filekeeper.models import FileRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinkStatus:
    """Result of probing one record's backing file."""

    file_id: int
    filename: str
    storage_key: str
    healthy: bool


def backing_file_exists(record: FileRecord) -> bool:
    return os.path.isfile(record.storage_key)


async def verify_link(session: AsyncSession, file_id: int) -> LinkStatus:
    """Report whether a record's backing file exists. Never mutates the index."""
    record = await find_file(session, FileQuery.by_id(file_id))
    healthy = backing_file_exists(record)
    if not healthy:
        logger.info(
            "Broken link: record %d (%s) -> %s", record.id, record.filename, record.storage_key
        )
    return LinkStatus(
        file_id=record.id,
        filename=record.filename,
        storage_key=record.storage_key,
        healthy=healthy,
    )


async def audit_all(session: AsyncSession, owner_id: str) -> int:
    """Delete every record of an owner whose backing file is missing.

    Returns the number of records removed. Only index failures raise, as
    ``IndexUnavailable``.
    """
    records = await list_files(session, owner_id)
    orphans = [record for record in records if not backing_file_exists(record)]

    removed = 0
    for record in orphans:
        try:
            await delete_file(session, FileQuery.by_id(record.id))
        except NotFound:
            continue
        logger.info("Removed orphan record %d (%s)", record.id, record.storage_key)
        removed += 1

    logger.info(
        "Audit for %s: %d orphan(s) removed, %d record(s) checked", owner_id, removed, len(records)
    )
    return removed
