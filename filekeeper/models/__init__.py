"""SQLAlchemy ORM models for the metadata index."""

from filekeeper.models.base import Base
from filekeeper.models.file import FileRecord
from filekeeper.models.folder import FolderRecord

__all__ = [
    "Base",
    "FileRecord",
    "FolderRecord",
]
