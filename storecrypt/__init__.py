"""
Storage abstraction with transparent compression and encryption.

Provides one storage contract that works with:
- Local filesystems (LocalStorage)
- S3-compatible object stores (S3Storage)
- Remote servers via SFTP (SFTPStorage)
- Process memory (InMemoryStorage)

and two wrappers that encode objects on the way in and out:
- One fixed format for every object (TransformingStorage)
- One write format, any configured read format (VariadicStorage)

Example usage:
    ```python
    from storecrypt import (
        Algorithms, ChunkedGCMCrypter, LocalStorage, VariadicStorage, gzip_pair,
    )

    algorithms = Algorithms(gzip=gzip_pair(), aes=ChunkedGCMCrypter("s3cret"))
    storage = VariadicStorage(LocalStorage("/data"), algorithms, write_ext=".gz.aes")

    storage.put("wal/0001", io.BytesIO(b"hello"))   # stored as wal/0001.gz.aes
    with storage.get("wal/0001") as f:
        assert f.read() == b"hello"
    ```
"""

from .base import FileInfo, StorageBackend
from .codecs import (
    CodecPair,
    GzipCompressor,
    GzipDecompressor,
    ZstdCompressor,
    ZstdDecompressor,
    gzip_pair,
    zstd_pair,
)
from .config import StorageConfig, build_algorithms, build_backend, create_storage_from_config
from .context import Context
from .crypt import ChunkedGCMCrypter
from .errors import (
    AmbiguousNameError,
    ConfigurationError,
    ContextCanceled,
    IntegrityError,
    NotFoundError,
    StorageError,
    TransportError,
)
from .local import LocalStorage
from .logging_config import setup_logging
from .memory import InMemoryStorage
from .s3 import S3Storage
from .sftp import SFTPStorage
from .transforming import TransformingStorage
from .variadic import Algorithms, Transforms, VariadicStorage

__all__ = [
    "StorageBackend",
    "FileInfo",
    "Context",
    "LocalStorage",
    "InMemoryStorage",
    "S3Storage",
    "SFTPStorage",
    "TransformingStorage",
    "VariadicStorage",
    "Algorithms",
    "Transforms",
    "CodecPair",
    "GzipCompressor",
    "GzipDecompressor",
    "ZstdCompressor",
    "ZstdDecompressor",
    "gzip_pair",
    "zstd_pair",
    "ChunkedGCMCrypter",
    "StorageConfig",
    "build_backend",
    "build_algorithms",
    "create_storage_from_config",
    "setup_logging",
    "StorageError",
    "NotFoundError",
    "ConfigurationError",
    "AmbiguousNameError",
    "TransportError",
    "IntegrityError",
    "ContextCanceled",
]

__version__ = "0.1.0"
