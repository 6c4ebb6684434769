"""Compression capability objects.

Each compressor/decompressor carries the file extension it is stored under
and wraps a binary stream. Closing a wrapper never closes the stream it
wraps; the pipelines in `pipe` own the lifetime of the underlying streams.
"""

import gzip
import zlib
from dataclasses import dataclass
from typing import BinaryIO

import zstandard

GZIP_EXT = ".gz"
ZSTD_EXT = ".zst"

# Errors a decompressor may raise on corrupt input
DECODE_ERRORS = (OSError, EOFError, zlib.error, zstandard.ZstdError)


class GzipCompressor:
    """Gzip compression (stdlib gzip)."""

    file_extension = GZIP_EXT

    def __init__(self, level: int = 6):
        self.level = level

    def wrap_writer(self, dst: BinaryIO) -> BinaryIO:
        # filename="" keeps the temp-file name out of the gzip header
        return gzip.GzipFile(filename="", fileobj=dst, mode="wb", compresslevel=self.level)

    def __repr__(self) -> str:
        return f"GzipCompressor(level={self.level})"


class GzipDecompressor:
    """Gzip decompression (stdlib gzip)."""

    file_extension = GZIP_EXT

    def wrap_reader(self, src: BinaryIO) -> BinaryIO:
        return gzip.GzipFile(fileobj=src, mode="rb")

    def __repr__(self) -> str:
        return "GzipDecompressor()"


class ZstdCompressor:
    """Zstandard compression (zstandard package)."""

    file_extension = ZSTD_EXT

    def __init__(self, level: int = 3):
        self.level = level

    def wrap_writer(self, dst: BinaryIO) -> BinaryIO:
        return zstandard.ZstdCompressor(level=self.level).stream_writer(dst, closefd=False)

    def __repr__(self) -> str:
        return f"ZstdCompressor(level={self.level})"


class ZstdDecompressor:
    """Zstandard decompression (zstandard package)."""

    file_extension = ZSTD_EXT

    def wrap_reader(self, src: BinaryIO) -> BinaryIO:
        return zstandard.ZstdDecompressor().stream_reader(src, closefd=False)

    def __repr__(self) -> str:
        return "ZstdDecompressor()"


@dataclass(frozen=True)
class CodecPair:
    """A compressor and its matching decompressor."""

    compressor: object
    decompressor: object

    @property
    def file_extension(self) -> str:
        return self.compressor.file_extension


def gzip_pair(level: int = 6) -> CodecPair:
    """Build a gzip CodecPair."""
    return CodecPair(GzipCompressor(level), GzipDecompressor())


def zstd_pair(level: int = 3) -> CodecPair:
    """Build a zstd CodecPair."""
    return CodecPair(ZstdCompressor(level), ZstdDecompressor())
