"""Stream pipelines used by the transforming wrappers.

Writes run compress then encrypt, reads run decrypt then decompress. Either
step may be absent; with both absent the source stream passes through.
"""

import io
import shutil
import tempfile
from contextlib import contextmanager
from typing import BinaryIO, Iterator, List, Optional

from .codecs import DECODE_ERRORS
from .errors import StorageError, TransportError

# In-memory spool size before the encoded payload spills to a temp file
SPOOL_MAX_SIZE = 8 * 1024 * 1024
COPY_BUFSIZE = 64 * 1024


@contextmanager
def compress_and_encrypt(
    src: BinaryIO,
    compressor=None,
    crypter=None,
) -> Iterator[BinaryIO]:
    """Encode `src` into a rewound spool file.

    Args:
        src: Plain input stream
        compressor: Optional Compressor (applied first)
        crypter: Optional Crypter (applied to the compressed bytes)

    Yields:
        Readable stream of encoded bytes, closed when the block exits

    Example:
        ```python
        with compress_and_encrypt(stream, gzip_pair().compressor, crypter) as encoded:
            backend.put("wal/0001.gz.aes", encoded)
        ```
    """
    if compressor is None and crypter is None:
        yield src
        return

    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE, mode="w+b")
    try:
        layers: List[BinaryIO] = []
        sink: BinaryIO = spool
        if crypter is not None:
            sink = crypter.wrap_writer(sink)
            layers.append(sink)
        if compressor is not None:
            sink = compressor.wrap_writer(sink)
            layers.append(sink)

        shutil.copyfileobj(src, sink, COPY_BUFSIZE)

        # Outermost first so each trailer lands in the layer below
        for layer in reversed(layers):
            layer.close()

        spool.seek(0)
        yield spool
    finally:
        spool.close()


class StackedReader(io.RawIOBase):
    """Reads from the top of a stack of decoding layers.

    Closing it closes every layer, top to bottom, and the source stream.
    Decoder failures surface as TransportError.
    """

    def __init__(self, top: BinaryIO, layers: List[BinaryIO]):
        super().__init__()
        self._top = top
        self._layers = layers

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        try:
            data = self._top.read(len(buffer))
        except StorageError:
            raise
        except DECODE_ERRORS as e:
            raise TransportError(f"failed to decode stream: {e}") from e
        n = len(data)
        buffer[:n] = data
        return n

    def close(self):
        if not self.closed:
            try:
                for layer in self._layers:
                    layer.close()
            finally:
                super().close()


def decrypt_and_decompress(
    src: BinaryIO,
    crypter=None,
    decompressor=None,
) -> BinaryIO:
    """Wrap `src` so reads yield the decoded bytes.

    Args:
        src: Encoded input stream (ownership passes to the result)
        crypter: Optional Crypter (applied first)
        decompressor: Optional Decompressor (applied to the decrypted bytes)

    Returns:
        Readable stream; closing it closes `src`
    """
    if crypter is None and decompressor is None:
        return src

    layers: List[BinaryIO] = [src]
    top: BinaryIO = src
    if crypter is not None:
        top = crypter.wrap_reader(top)
        layers.append(top)
    if decompressor is not None:
        top = decompressor.wrap_reader(top)
        layers.append(top)

    return io.BufferedReader(StackedReader(top, list(reversed(layers))), COPY_BUFSIZE)
