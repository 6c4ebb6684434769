"""
Variant-resolving storage wrapper.

A VariadicStorage writes every object with one configured suffix but reads
whatever encoding is actually stored. Several physical variants of one
logical object may coexist (e.g. after the write suffix was changed):

    wal/0001.gz.aes   written when write_ext was ".gz.aes"
    wal/0001.zst      written later with write_ext ".zst"

Reads probe the suffixes in a fixed priority order, deletes and renames
touch every variant.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Set, Tuple

from . import paths
from .base import FileInfo, StorageBackend
from .codecs import GZIP_EXT, ZSTD_EXT, CodecPair
from .context import Context
from .crypt import AES_EXT
from .errors import (
    AmbiguousNameError,
    ConfigurationError,
    ContextCanceled,
    NotFoundError,
    StorageError,
)
from .pipe import compress_and_encrypt, decrypt_and_decompress

logger = logging.getLogger(__name__)

# Every suffix tag this package knows, whether or not it is configured
KNOWN_SUFFIXES = (GZIP_EXT, ZSTD_EXT, AES_EXT)


@dataclass(frozen=True)
class Algorithms:
    """The transform capabilities available to a VariadicStorage.

    Attributes:
        gzip: Gzip codec pair, if available
        zstd: Zstd codec pair, if available
        aes: Crypter, if available
    """

    gzip: Optional[CodecPair] = None
    zstd: Optional[CodecPair] = None
    aes: Optional[object] = None

    def supported_exts(self) -> Tuple[str, ...]:
        """Return every producible suffix, highest priority first."""
        exts = []
        if self.aes is not None:
            if self.gzip is not None:
                exts.append(GZIP_EXT + AES_EXT)
            if self.zstd is not None:
                exts.append(ZSTD_EXT + AES_EXT)
        if self.gzip is not None:
            exts.append(GZIP_EXT)
        if self.zstd is not None:
            exts.append(ZSTD_EXT)
        if self.aes is not None:
            exts.append(AES_EXT)
        exts.append("")
        return tuple(exts)


@dataclass(frozen=True)
class Transforms:
    """Transform steps selected for one physical name."""

    compressor: Optional[object] = None
    decompressor: Optional[object] = None
    crypter: Optional[object] = None


class VariadicStorage(StorageBackend):
    """
    Storage wrapper that writes one format and reads any configured format.

    Example:
        >>> algorithms = Algorithms(gzip=gzip_pair(), aes=ChunkedGCMCrypter("s3cret"))
        >>> storage = VariadicStorage(LocalStorage("/data"), algorithms, ".gz.aes")
        >>> storage.put("wal/0001", io.BytesIO(b"hello"))  # wal/0001.gz.aes
        >>> storage.find_existing_name("wal/0001")
        'wal/0001.gz.aes'
        >>> storage.get("wal/0001").read()
        b'hello'

    Note:
        A logical name that itself ends in a supported suffix (say
        "report.gz") cannot be told apart from an encoded physical name.
        By default such names are not guarded against; pass
        strict_names=True to reject them with AmbiguousNameError.

    Args:
        backend: Storage the physical objects live in
        algorithms: Available transform capabilities
        write_ext: Suffix used for new writes ("" for plain)
        strict_names: Reject logical names ending in a known suffix

    Raises:
        ConfigurationError: If write_ext cannot be produced from algorithms
    """

    def __init__(
        self,
        backend: StorageBackend,
        algorithms: Algorithms,
        write_ext: str = "",
        strict_names: bool = False,
    ):
        self.backend = backend
        self.algorithms = algorithms
        self.strict_names = strict_names
        self._exts = algorithms.supported_exts()

        if write_ext not in self._exts:
            raise ConfigurationError(
                f"Write extension {write_ext!r} is not supported by the configured "
                f"algorithms (supported: {', '.join(repr(e) for e in self._exts)})"
            )
        self.write_ext = write_ext
        self._write_transforms = self.transforms_from_name(write_ext)

    def supported_exts(self) -> Tuple[str, ...]:
        """Suffixes in probe order, highest priority first."""
        return self._exts

    def transforms_from_name(self, name: str) -> Transforms:
        """Select the transform steps implied by the suffixes of `name`.

        An outer ".aes" selects the crypter; what remains selects the codec by
        ".gz" or ".zst". Suffixes with no configured capability are ignored.
        """
        crypter = None
        if self.algorithms.aes is not None and name.endswith(AES_EXT):
            crypter = self.algorithms.aes
            name = name[: -len(AES_EXT)]

        codec = None
        if self.algorithms.gzip is not None and name.endswith(GZIP_EXT):
            codec = self.algorithms.gzip
        elif self.algorithms.zstd is not None and name.endswith(ZSTD_EXT):
            codec = self.algorithms.zstd

        if codec is None:
            return Transforms(crypter=crypter)
        return Transforms(
            compressor=codec.compressor,
            decompressor=codec.decompressor,
            crypter=crypter,
        )

    def encode_path(self, base: str) -> str:
        """Physical name for a new write of `base`."""
        return paths.to_slash(base) + self.write_ext

    def decode_path(self, name: str) -> str:
        """Strip the highest-priority supported suffix from `name`, if any."""
        name = paths.to_slash(name)
        ext = paths.matching_suffix(name, self._exts)
        return paths.strip_suffix(name, ext) if ext else name

    def find_existing_name(self, base: str, ctx: Optional[Context] = None) -> str:
        """Return the physical name a read of `base` would use.

        Raises:
            NotFoundError: If no variant of `base` exists
        """
        base = paths.to_slash(base)
        for ext in self._exts:
            candidate = base + ext
            if self.backend.exists(candidate, ctx=ctx):
                logger.debug(f"Resolved {base} -> {candidate}")
                return candidate
        raise NotFoundError(f"No variant of '{base}' found")

    def _check_name(self, path: str):
        if self.strict_names:
            ext = paths.matching_suffix(path, KNOWN_SUFFIXES)
            if ext:
                raise AmbiguousNameError(
                    f"Logical name '{path}' ends in reserved suffix {ext!r}"
                )

    def put(self, path: str, stream: BinaryIO, ctx: Optional[Context] = None) -> None:
        self._check_name(path)
        physical = self.encode_path(path)
        t = self._write_transforms
        logger.debug(f"Writing {physical}")
        with compress_and_encrypt(stream, t.compressor, t.crypter) as encoded:
            self.backend.put(physical, encoded, ctx=ctx)

    def get(self, path: str, ctx: Optional[Context] = None) -> BinaryIO:
        """Open a logical object, or a physical one named with its suffix.

        A name ending in a supported suffix is fetched as-is and decoded by
        that suffix. Any other name is resolved via find_existing_name.

        Raises:
            NotFoundError: If no variant exists
        """
        path = paths.to_slash(path)
        if paths.matching_suffix(path, self._exts):
            physical = path
        else:
            self._check_name(path)
            physical = self.find_existing_name(path, ctx=ctx)

        t = self.transforms_from_name(physical)
        raw = self.backend.get(physical, ctx=ctx)
        return decrypt_and_decompress(raw, t.crypter, t.decompressor)

    def exists(self, path: str, ctx: Optional[Context] = None) -> bool:
        self._check_name(path)
        try:
            self.find_existing_name(path, ctx=ctx)
        except NotFoundError:
            return False
        return True

    def delete(self, path: str, ctx: Optional[Context] = None) -> None:
        """Delete every stored variant of `path`.

        Missing variants are skipped. Other failures don't stop the loop;
        the last one is raised once every suffix has been tried.
        """
        self._check_name(path)
        base = paths.to_slash(path)
        last_error: Optional[StorageError] = None
        for ext in self._exts:
            candidate = base + ext
            try:
                self.backend.delete(candidate, ctx=ctx)
                logger.debug(f"Deleted {candidate}")
            except NotFoundError:
                continue
            except ContextCanceled:
                raise
            except StorageError as e:
                logger.warning(f"Failed to delete {candidate}: {e}")
                last_error = e
        if last_error is not None:
            raise last_error

    def delete_all_bulk(self, paths: List[str], ctx: Optional[Context] = None) -> None:
        last_error: Optional[StorageError] = None
        for path in paths:
            try:
                self.delete(path, ctx=ctx)
            except ContextCanceled:
                raise
            except StorageError as e:
                last_error = e
        if last_error is not None:
            raise last_error

    def rename(self, old_path: str, new_path: str, ctx: Optional[Context] = None) -> None:
        """Move every stored variant of `old_path` to `new_path`.

        Either name may carry a suffix; both are reduced to logical form
        first. Not atomic: after a failure some variants may already have
        moved. The last failure is raised after all suffixes were tried.
        """
        self._check_name(old_path)
        self._check_name(new_path)
        old_base = self.decode_path(old_path)
        new_base = self.decode_path(new_path)
        if old_base == new_base:
            return

        last_error: Optional[StorageError] = None
        for ext in self._exts:
            old_physical = old_base + ext
            new_physical = new_base + ext
            try:
                if not self.backend.exists(old_physical, ctx=ctx):
                    continue
                self.backend.rename(old_physical, new_physical, ctx=ctx)
                logger.debug(f"Renamed {old_physical} -> {new_physical}")
            except NotFoundError:
                continue
            except ContextCanceled:
                raise
            except StorageError as e:
                logger.warning(f"Failed to rename {old_physical}: {e}")
                last_error = e
        if last_error is not None:
            raise last_error

    def list(self, prefix: str, ctx: Optional[Context] = None) -> List[str]:
        """List logical names under `prefix`.

        Not deduplicated: a logical object stored in two formats appears
        twice. Use list_distinct for one entry per object.
        """
        return [self.decode_path(p) for p in self.backend.list(prefix, ctx=ctx)]

    def list_distinct(self, prefix: str, ctx: Optional[Context] = None) -> List[str]:
        """Sorted logical names under `prefix`, one per object."""
        return sorted(set(self.list(prefix, ctx=ctx)))

    def list_info(self, prefix: str, ctx: Optional[Context] = None) -> List[FileInfo]:
        return [
            FileInfo(path=self.decode_path(info.path), mod_time=info.mod_time, size=info.size)
            for info in self.backend.list_info(prefix, ctx=ctx)
        ]

    def delete_dir(self, path: str, ctx: Optional[Context] = None) -> None:
        self.backend.delete_dir(path, ctx=ctx)

    def delete_all(self, prefix: str, ctx: Optional[Context] = None) -> None:
        self.backend.delete_all(prefix, ctx=ctx)

    def list_top_level_dirs(self, prefix: str, ctx: Optional[Context] = None) -> Set[str]:
        return self.backend.list_top_level_dirs(prefix, ctx=ctx)

    def __repr__(self) -> str:
        return (
            f"VariadicStorage(backend={self.backend!r}, write_ext={self.write_ext!r}, "
            f"exts={self._exts!r})"
        )
