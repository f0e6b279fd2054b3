"""Folder record model."""

from __future__ import annotations

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from filekeeper.models.base import Base


class FolderRecord(Base):
    """Indexed directory under the storage root.

    ``parent_folder_id`` is a weak back-reference used for lookup only: there
    is no foreign key and deleting a folder never cascades to its children.
    """

    __tablename__ = "folders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[str] = mapped_column(String, nullable=False)
    parent_folder_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "owner_id", "parent_folder_id", "name", name="uq_folders_owner_parent_name"
        ),
        Index("idx_folders_owner", "owner_id"),
    )
