"""In-memory storage backend.

Holds objects in a dict. Handy for unit tests and for embedding where no
persistence is wanted. Directories are implied by path prefixes.
"""

import io
import threading
from datetime import datetime, timezone
from typing import BinaryIO, Dict, List, Optional, Set, Tuple

from . import paths as pathutil
from .base import FileInfo, StorageBackend
from .context import Context, check
from .errors import NotFoundError


class InMemoryStorage(StorageBackend):
    """Storage backend keeping every object in process memory.

    Safe to share between threads; every operation holds an internal lock.

    Example:
        ```python
        storage = InMemoryStorage()
        storage.put("wal/0001", io.BytesIO(b"segment"))
        storage.list("wal")  # ['wal/0001']
        ```
    """

    def __init__(self):
        self._objects: Dict[str, Tuple[bytes, datetime]] = {}
        self._lock = threading.RLock()

    def _under(self, prefix: str) -> List[str]:
        prefix = pathutil.clean(prefix)
        if not prefix:
            return sorted(self._objects)
        dir_prefix = prefix + "/"
        return sorted(
            p for p in self._objects if p == prefix or p.startswith(dir_prefix)
        )

    def put(self, path: str, stream: BinaryIO, ctx: Optional[Context] = None) -> None:
        check(ctx)
        data = stream.read()
        with self._lock:
            self._objects[pathutil.clean(path)] = (data, datetime.now(timezone.utc))

    def get(self, path: str, ctx: Optional[Context] = None) -> BinaryIO:
        check(ctx)
        with self._lock:
            entry = self._objects.get(pathutil.clean(path))
        if entry is None:
            raise NotFoundError(f"Object not found: {path}")
        return io.BytesIO(entry[0])

    def list(self, prefix: str, ctx: Optional[Context] = None) -> List[str]:
        check(ctx)
        with self._lock:
            return self._under(prefix)

    def list_info(self, prefix: str, ctx: Optional[Context] = None) -> List[FileInfo]:
        check(ctx)
        with self._lock:
            return [
                FileInfo(path=p, mod_time=self._objects[p][1], size=len(self._objects[p][0]))
                for p in self._under(prefix)
            ]

    def delete(self, path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        with self._lock:
            try:
                del self._objects[pathutil.clean(path)]
            except KeyError:
                raise NotFoundError(f"Object not found: {path}") from None

    def delete_dir(self, path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        with self._lock:
            for p in self._under(path):
                del self._objects[p]

    def delete_all(self, prefix: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        prefix = pathutil.clean(prefix)
        with self._lock:
            for p in self._under(prefix):
                if p != prefix:
                    del self._objects[p]

    def delete_all_bulk(self, paths: List[str], ctx: Optional[Context] = None) -> None:
        check(ctx)
        with self._lock:
            for path in paths:
                for p in self._under(path):
                    del self._objects[p]

    def exists(self, path: str, ctx: Optional[Context] = None) -> bool:
        check(ctx)
        with self._lock:
            return pathutil.clean(path) in self._objects

    def list_top_level_dirs(self, prefix: str, ctx: Optional[Context] = None) -> Set[str]:
        check(ctx)
        base = pathutil.dir_prefix(prefix)
        dirs = set()
        with self._lock:
            for p in self._under(prefix):
                rest = p[len(base):]
                if "/" in rest:
                    dirs.add(base + rest.split("/", 1)[0])
        return dirs

    def rename(self, old_path: str, new_path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        old_key = pathutil.clean(old_path)
        new_key = pathutil.clean(new_path)
        if old_key == new_key:
            return
        with self._lock:
            try:
                self._objects[new_key] = self._objects.pop(old_key)
            except KeyError:
                raise NotFoundError(f"Object not found: {old_path}") from None

    def __repr__(self) -> str:
        return f"InMemoryStorage(objects={len(self._objects)})"
