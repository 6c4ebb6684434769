"""Local filesystem storage backend."""

import logging
import os
import shutil
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Set, Union

from . import paths as pathutil
from .base import FileInfo, StorageBackend
from .context import Context, check
from .errors import NotFoundError, StorageError, TransportError

logger = logging.getLogger(__name__)

COPY_BUFSIZE = 64 * 1024


@contextmanager
def _os_errors(identifier: str, action: str):
    """Translate OSError raised inside the block into storage errors."""
    try:
        yield
    except StorageError:
        raise
    except FileNotFoundError as e:
        raise NotFoundError(f"File not found: {identifier}") from e
    except OSError as e:
        raise TransportError(f"Failed to {action} '{identifier}': {e}") from e


class LocalStorage(StorageBackend):
    """Storage backend for local filesystem.

    Stores files in a local directory on the filesystem.
    All paths are treated as relative to base_dir.

    Example:
        ```python
        storage = LocalStorage(base_dir="/data/wal")

        storage.put("0001", io.BytesIO(b"segment"))
        if storage.exists("0001"):
            with storage.get("0001") as f:
                content = f.read()

        storage.list("")  # ['0001']
        ```

    Args:
        base_dir: Base directory for storage. Will be created if it doesn't exist.
        fsync_on_write: fsync every file before closing it (default: False)
        create_if_missing: Create base_dir if it doesn't exist (default: True)
    """

    def __init__(
        self,
        base_dir: Union[str, Path],
        fsync_on_write: bool = False,
        create_if_missing: bool = True
    ):
        """Initialize local storage backend.

        Raises:
            ValueError: If base_dir doesn't exist and create_if_missing=False
        """
        self.base_dir = Path(base_dir).expanduser().resolve()
        self.fsync_on_write = fsync_on_write

        if not self.base_dir.exists():
            if create_if_missing:
                self.base_dir.mkdir(parents=True, exist_ok=True)
            else:
                raise ValueError(f"Base directory does not exist: {self.base_dir}")

        if not self.base_dir.is_dir():
            raise ValueError(f"Base path is not a directory: {self.base_dir}")

    def _resolve_path(self, identifier: str) -> Path:
        """Resolve identifier to full filesystem path.

        Raises:
            ValueError: If the identifier resolves outside base_dir
        """
        path = (self.base_dir / pathutil.clean(identifier)).resolve()

        # Security check: ensure path is within base_dir
        try:
            path.relative_to(self.base_dir)
        except ValueError:
            raise ValueError(
                f"Invalid identifier: '{identifier}' resolves outside base directory"
            )

        return path

    def _relative(self, path: Path) -> str:
        return path.relative_to(self.base_dir).as_posix()

    def _walk_files(self, prefix: str, ctx: Optional[Context]) -> Iterator[Path]:
        root = self._resolve_path(prefix)
        if root.is_file():
            yield root
            return
        if not root.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(root):
            check(ctx)
            dirnames.sort()
            for name in sorted(filenames):
                yield Path(dirpath) / name

    def put(self, path: str, stream: BinaryIO, ctx: Optional[Context] = None) -> None:
        check(ctx)
        target = self._resolve_path(path)
        with _os_errors(path, "write"):
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                shutil.copyfileobj(stream, f, COPY_BUFSIZE)
                if self.fsync_on_write:
                    f.flush()
                    os.fsync(f.fileno())
        logger.debug(f"Wrote {target}")

    def get(self, path: str, ctx: Optional[Context] = None) -> BinaryIO:
        check(ctx)
        target = self._resolve_path(path)
        with _os_errors(path, "read"):
            if target.is_dir():
                raise TransportError(f"Not a regular file: {path}")
            return open(target, "rb")

    def list(self, prefix: str, ctx: Optional[Context] = None) -> List[str]:
        check(ctx)
        with _os_errors(prefix, "list"):
            return [self._relative(p) for p in self._walk_files(prefix, ctx)]

    def list_info(self, prefix: str, ctx: Optional[Context] = None) -> List[FileInfo]:
        check(ctx)
        infos = []
        with _os_errors(prefix, "list"):
            for p in self._walk_files(prefix, ctx):
                st = p.stat()
                infos.append(FileInfo(
                    path=self._relative(p),
                    mod_time=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                    size=st.st_size,
                ))
        return infos

    def delete(self, path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        target = self._resolve_path(path)
        with _os_errors(path, "delete"):
            if target.is_dir():
                raise TransportError(f"Not a regular file: {path}")
            target.unlink()
        logger.debug(f"Deleted {target}")

    def _remove_tree(self, target: Path):
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()

    def delete_dir(self, path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        target = self._resolve_path(path)
        if target == self.base_dir:
            raise ValueError("Refusing to delete the storage base directory")
        with _os_errors(path, "delete"):
            self._remove_tree(target)

    def delete_all(self, prefix: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        root = self._resolve_path(prefix)
        if not root.is_dir():
            return
        with _os_errors(prefix, "delete"):
            for child in root.iterdir():
                check(ctx)
                self._remove_tree(child)

    def delete_all_bulk(self, paths: List[str], ctx: Optional[Context] = None) -> None:
        targets = [(path, self._resolve_path(path)) for path in paths]
        if any(target == self.base_dir for _, target in targets):
            raise ValueError("Refusing to delete the storage base directory")

        last_error: Optional[StorageError] = None
        for path, target in targets:
            check(ctx)
            try:
                with _os_errors(path, "delete"):
                    self._remove_tree(target)
            except NotFoundError:
                continue
            except TransportError as e:
                logger.warning(str(e))
                last_error = e
        if last_error is not None:
            raise last_error

    def exists(self, path: str, ctx: Optional[Context] = None) -> bool:
        check(ctx)
        try:
            return self._resolve_path(path).is_file()
        except (ValueError, OSError):
            return False

    def list_top_level_dirs(self, prefix: str, ctx: Optional[Context] = None) -> Set[str]:
        check(ctx)
        root = self._resolve_path(prefix)
        if not root.is_dir():
            return set()
        with _os_errors(prefix, "list"):
            return {self._relative(child) for child in root.iterdir() if child.is_dir()}

    def rename(self, old_path: str, new_path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        source = self._resolve_path(old_path)
        dest = self._resolve_path(new_path)
        if source == dest:
            return
        if not source.is_file():
            raise NotFoundError(f"File not found: {old_path}")
        with _os_errors(old_path, "rename"):
            dest.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, dest)
        logger.debug(f"Renamed {source} -> {dest}")

    def get_path(self, identifier: str) -> str:
        """Get absolute filesystem path for a stored object."""
        return str(self._resolve_path(identifier))

    def __repr__(self) -> str:
        return f"LocalStorage(base_dir='{self.base_dir}')"
