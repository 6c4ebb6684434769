"""
Storage contract shared by every backend and wrapper.

This module defines the narrow interface that local filesystems, S3-compatible
object stores, SFTP servers and the transforming wrappers all implement.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import BinaryIO, List, Optional, Set

from .context import Context


@dataclass(frozen=True)
class FileInfo:
    """Listing entry for one stored object.

    Attributes:
        path: Path relative to the storage root (logical path when returned
            by a wrapper, physical path when returned by a backend)
        mod_time: Last modification time
        size: Size in bytes as stored (after any transform)
    """

    path: str
    mod_time: datetime
    size: int = 0


class StorageBackend(ABC):
    """Abstract interface for storage backends.

    Defines the capability set every storage medium exposes. Implementations
    hold their own connection/session state; the interface itself has none.

    All paths are forward-slash separated and relative to the storage root.
    Every method takes an optional `ctx` that implementations must honor at
    their I/O boundaries and pass on unchanged to anything they delegate to.

    Example:
        ```python
        storage = LocalStorage("/data/wal")

        # Or remote storage
        storage = S3Storage(client, bucket="backups", prefix="wal")

        # Application code works the same
        storage.put("0001", io.BytesIO(b"segment"))
        with storage.get("0001") as stream:
            data = stream.read()
        ```
    """

    @abstractmethod
    def put(self, path: str, stream: BinaryIO, ctx: Optional[Context] = None) -> None:
        """Store everything read from `stream` at `path` (overwrite).

        Creates any parent structure the medium needs.

        Raises:
            TransportError: If the write fails
        """

    @abstractmethod
    def get(self, path: str, ctx: Optional[Context] = None) -> BinaryIO:
        """Open the object at `path` for reading.

        The caller must close the returned stream.

        Raises:
            NotFoundError: If the object doesn't exist
            TransportError: If the read fails
        """

    @abstractmethod
    def list(self, prefix: str, ctx: Optional[Context] = None) -> List[str]:
        """List paths of every object under `prefix` (recursive)."""

    @abstractmethod
    def list_info(self, prefix: str, ctx: Optional[Context] = None) -> List[FileInfo]:
        """List FileInfo entries of every object under `prefix` (recursive)."""

    @abstractmethod
    def delete(self, path: str, ctx: Optional[Context] = None) -> None:
        """Delete one object.

        Raises:
            NotFoundError: If the object doesn't exist
        """

    @abstractmethod
    def delete_dir(self, path: str, ctx: Optional[Context] = None) -> None:
        """Delete `path` and everything under it. A missing path is not an error."""

    @abstractmethod
    def delete_all(self, prefix: str, ctx: Optional[Context] = None) -> None:
        """Delete everything under `prefix`, leaving the prefix itself in place."""

    @abstractmethod
    def delete_all_bulk(self, paths: List[str], ctx: Optional[Context] = None) -> None:
        """Delete every listed path (object or directory tree).

        Entries that don't exist are skipped.
        """

    @abstractmethod
    def exists(self, path: str, ctx: Optional[Context] = None) -> bool:
        """Return True if a regular object exists at `path`."""

    @abstractmethod
    def list_top_level_dirs(self, prefix: str, ctx: Optional[Context] = None) -> Set[str]:
        """Return the immediate sub-directories of `prefix`.

        Entries are root-relative, e.g. listing "list/1" yields {"list/1/2"}.
        """

    @abstractmethod
    def rename(self, old_path: str, new_path: str, ctx: Optional[Context] = None) -> None:
        """Move an object to a new path.

        Equal paths are a no-op. Parent structure for `new_path` is created.

        Raises:
            NotFoundError: If `old_path` doesn't exist
        """
