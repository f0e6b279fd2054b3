"""Error taxonomy for the file store.

Convention:
- Every core operation raises a ``FileStoreError`` subclass instead of a raw
  ``OSError`` or database error, so callers match on kind rather than on
  platform error codes.
- Best-effort operations (backups, per-record audit) swallow ``NotFound``
  themselves; everything else reaches the caller.
- ``IndexUnavailable`` during startup is the only fatal condition.
"""

from __future__ import annotations

import errno


class FileStoreError(Exception):
    """Base class for all recoverable file store errors."""


class NotFound(FileStoreError):
    """Index record or disk target is absent."""


class AlreadyExists(FileStoreError):
    """Destination already exists."""


class NotEmpty(FileStoreError):
    """Folder still has entries and recursive delete was not requested."""


class InvalidPath(FileStoreError):
    """Logical name escapes the storage root."""


class NoBackupAvailable(FileStoreError):
    """No backup has been taken for the file."""


class NoSnapshotAvailable(FileStoreError):
    """Index record holds no content snapshot."""


class AlreadyEncrypted(FileStoreError):
    """File already carries the encrypted marker suffix."""


class NotEncrypted(FileStoreError):
    """File lacks the encrypted marker suffix or is not a valid envelope."""


class BrokenLink(FileStoreError):
    """Index record references a missing disk file."""


class IndexUnavailable(FileStoreError):
    """Metadata index cannot be reached."""


class DuplicateKey(FileStoreError):
    """Insert would violate an (owner, parent, name) uniqueness constraint."""


_ERRNO_KINDS: dict[int, type[FileStoreError]] = {
    errno.ENOENT: NotFound,
    errno.EEXIST: AlreadyExists,
    errno.ENOTEMPTY: NotEmpty,
    errno.ENOTDIR: InvalidPath,
    errno.EISDIR: InvalidPath,
}


def classify_os_error(exc: OSError, target: str) -> FileStoreError:
    """Translate an ``OSError`` into the matching taxonomy kind."""
    kind = _ERRNO_KINDS.get(exc.errno) if exc.errno is not None else None
    if kind is NotFound:
        return NotFound(f"'{target}' not found")
    if kind is AlreadyExists:
        return AlreadyExists(f"'{target}' already exists")
    if kind is NotEmpty:
        return NotEmpty(f"Folder '{target}' is not empty")
    if kind is InvalidPath:
        return InvalidPath(f"'{target}' is not the expected kind of entry")
    return FileStoreError(f"'{target}': {exc.strerror or exc}")
