"""
Fixed-format storage wrapper.

Every object written through a TransformingStorage gets the same transform
(optional compression, then optional encryption) and the same physical
suffix. Useful when a store is known to hold a single format, e.g. a WAL
archive that is always gzip + AES.
"""

import logging
from typing import BinaryIO, List, Optional, Set

from . import paths
from .base import FileInfo, StorageBackend
from .context import Context
from .pipe import compress_and_encrypt, decrypt_and_decompress

logger = logging.getLogger(__name__)


class TransformingStorage(StorageBackend):
    """
    Wrap a backend so every object is stored with one fixed transform.

    The physical suffix is the compressor's suffix followed by the crypter's
    suffix, either of which may be empty. Prefix operations (delete_all,
    delete_dir, list_top_level_dirs) pass through unchanged.

    Example:
        >>> codec = gzip_pair()
        >>> storage = TransformingStorage(
        ...     LocalStorage("/data"),
        ...     compressor=codec.compressor,
        ...     decompressor=codec.decompressor,
        ...     crypter=ChunkedGCMCrypter("s3cret"),
        ... )
        >>> storage.put("wal/0001", io.BytesIO(b"segment"))  # stored as wal/0001.gz.aes
        >>> storage.list("wal")
        ['wal/0001']

    Args:
        backend: Storage the physical objects live in
        compressor: Optional compressor used on write
        decompressor: Optional decompressor used on read
        crypter: Optional crypter used on both sides
    """

    def __init__(
        self,
        backend: StorageBackend,
        compressor=None,
        decompressor=None,
        crypter=None,
    ):
        self.backend = backend
        self.compressor = compressor
        self.decompressor = decompressor
        self.crypter = crypter

        ext = ""
        if compressor is not None:
            ext += compressor.file_extension
        elif decompressor is not None:
            ext += decompressor.file_extension
        if crypter is not None:
            ext += crypter.file_extension
        self.file_ext = ext

    def _encode(self, path: str) -> str:
        return paths.to_slash(path) + self.file_ext

    def _decode(self, path: str) -> str:
        return paths.strip_suffix(path, self.file_ext)

    def put(self, path: str, stream: BinaryIO, ctx: Optional[Context] = None) -> None:
        physical = self._encode(path)
        logger.debug(f"Writing {physical}")
        with compress_and_encrypt(stream, self.compressor, self.crypter) as encoded:
            self.backend.put(physical, encoded, ctx=ctx)

    def get(self, path: str, ctx: Optional[Context] = None) -> BinaryIO:
        raw = self.backend.get(self._encode(path), ctx=ctx)
        return decrypt_and_decompress(raw, self.crypter, self.decompressor)

    def list(self, prefix: str, ctx: Optional[Context] = None) -> List[str]:
        return [self._decode(p) for p in self.backend.list(prefix, ctx=ctx)]

    def list_info(self, prefix: str, ctx: Optional[Context] = None) -> List[FileInfo]:
        return [
            FileInfo(path=self._decode(info.path), mod_time=info.mod_time, size=info.size)
            for info in self.backend.list_info(prefix, ctx=ctx)
        ]

    def delete(self, path: str, ctx: Optional[Context] = None) -> None:
        self.backend.delete(self._encode(path), ctx=ctx)

    def delete_dir(self, path: str, ctx: Optional[Context] = None) -> None:
        self.backend.delete_dir(path, ctx=ctx)

    def delete_all(self, prefix: str, ctx: Optional[Context] = None) -> None:
        self.backend.delete_all(prefix, ctx=ctx)

    def delete_all_bulk(self, paths: List[str], ctx: Optional[Context] = None) -> None:
        self.backend.delete_all_bulk([self._encode(p) for p in paths], ctx=ctx)

    def exists(self, path: str, ctx: Optional[Context] = None) -> bool:
        return self.backend.exists(self._encode(path), ctx=ctx)

    def list_top_level_dirs(self, prefix: str, ctx: Optional[Context] = None) -> Set[str]:
        return self.backend.list_top_level_dirs(prefix, ctx=ctx)

    def rename(self, old_path: str, new_path: str, ctx: Optional[Context] = None) -> None:
        old_physical = self._encode(old_path)
        new_physical = self._encode(new_path)
        logger.debug(f"Renaming {old_physical} -> {new_physical}")
        self.backend.rename(old_physical, new_physical, ctx=ctx)

    def __repr__(self) -> str:
        return f"TransformingStorage(backend={self.backend!r}, file_ext={self.file_ext!r})"
