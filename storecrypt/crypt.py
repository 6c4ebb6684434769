"""Password-based streaming encryption.

ChunkedGCMCrypter splits the plaintext into frames and seals each one with
AES-256-GCM. The stream layout is:

    magic (4 bytes, b"SCG1") | salt (16 bytes) | frame | frame | ...

    frame = ciphertext length (4 bytes, big-endian) | nonce (12 bytes) | ciphertext+tag

The key is derived from the password and the per-stream salt with
PBKDF2-HMAC-SHA256. Every frame authenticates its index and whether it is the
last frame, so reordered, dropped or truncated frames fail to decrypt.
"""

import io
import os
import struct
from typing import BinaryIO, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import IntegrityError

AES_EXT = ".aes"

MAGIC = b"SCG1"
SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_ITERATIONS = 200_000

_LENGTH = struct.Struct(">I")
_AAD = struct.Struct(">QB")


def derive_key(password: bytes, salt: bytes, iterations: int) -> bytes:
    """Derive a 256-bit AES key from a password and salt."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password)


def _frame_aad(index: int, final: bool) -> bytes:
    return _AAD.pack(index, 1 if final else 0)


def _read_exact(src: BinaryIO, size: int) -> bytes:
    """Read exactly `size` bytes unless EOF comes first."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = src.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


class _EncryptingWriter(io.RawIOBase):
    """Writable stream that seals frames into `dst`."""

    def __init__(self, dst: BinaryIO, password: bytes, chunk_size: int, iterations: int):
        super().__init__()
        self._dst = dst
        self._chunk_size = chunk_size
        salt = os.urandom(SALT_SIZE)
        self._aead = AESGCM(derive_key(password, salt, iterations))
        self._buffer = bytearray()
        self._index = 0
        dst.write(MAGIC + salt)

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        if self.closed:
            raise ValueError("write to closed file")
        self._buffer.extend(data)
        # Hold back at least one byte so the final frame is never skipped
        while len(self._buffer) > self._chunk_size:
            self._emit(bytes(self._buffer[: self._chunk_size]), final=False)
            del self._buffer[: self._chunk_size]
        return len(data)

    def _emit(self, plaintext: bytes, final: bool):
        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext, _frame_aad(self._index, final))
        self._dst.write(_LENGTH.pack(len(sealed)) + nonce + sealed)
        self._index += 1

    def close(self):
        if not self.closed:
            try:
                self._emit(bytes(self._buffer), final=True)
                self._buffer.clear()
            finally:
                super().close()


class _DecryptingReader(io.RawIOBase):
    """Readable stream of plaintext recovered from a sealed stream."""

    def __init__(self, src: BinaryIO, password: bytes, iterations: int, max_frame_size: int):
        super().__init__()
        self._src = src
        self._password = password
        self._iterations = iterations
        self._max_frame_size = max_frame_size
        self._aead: Optional[AESGCM] = None
        self._index = 0
        self._pending = b""
        self._next_header: Optional[bytes] = None
        self._done = False

    def readable(self) -> bool:
        return True

    def _start(self):
        header = _read_exact(self._src, len(MAGIC) + SALT_SIZE)
        if len(header) < len(MAGIC) + SALT_SIZE or header[: len(MAGIC)] != MAGIC:
            raise IntegrityError("encrypted stream has an invalid header")
        salt = header[len(MAGIC):]
        self._aead = AESGCM(derive_key(self._password, salt, self._iterations))
        self._next_header = _read_exact(self._src, _LENGTH.size)
        if not self._next_header:
            raise IntegrityError("encrypted stream is truncated")

    def _read_frame(self) -> bytes:
        if len(self._next_header) < _LENGTH.size:
            raise IntegrityError("encrypted stream is truncated")
        (length,) = _LENGTH.unpack(self._next_header)
        if length < TAG_SIZE or length > self._max_frame_size:
            raise IntegrityError(f"encrypted frame has invalid length {length}")
        nonce = _read_exact(self._src, NONCE_SIZE)
        sealed = _read_exact(self._src, length)
        if len(nonce) < NONCE_SIZE or len(sealed) < length:
            raise IntegrityError("encrypted stream is truncated")

        # A frame is final when nothing follows it
        self._next_header = _read_exact(self._src, _LENGTH.size)
        final = not self._next_header
        try:
            plaintext = self._aead.decrypt(nonce, sealed, _frame_aad(self._index, final))
        except InvalidTag as e:
            raise IntegrityError(
                f"encrypted frame {self._index} failed authentication"
            ) from e
        self._index += 1
        if final:
            self._done = True
        return plaintext

    def readinto(self, buffer) -> int:
        if self._aead is None:
            self._start()
        while not self._pending and not self._done:
            self._pending = self._read_frame()
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


class ChunkedGCMCrypter:
    """AES-256-GCM crypter keyed by a password.

    Args:
        password: Secret the key is derived from (str is UTF-8 encoded)
        chunk_size: Plaintext bytes per sealed frame
        iterations: PBKDF2 iteration count

    Example:
        ```python
        crypter = ChunkedGCMCrypter("s3cret")
        writer = crypter.wrap_writer(out)
        writer.write(b"payload")
        writer.close()
        ```
    """

    file_extension = AES_EXT

    def __init__(
        self,
        password: Union[str, bytes],
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        iterations: int = DEFAULT_ITERATIONS,
    ):
        if not password:
            raise ValueError("password must not be empty")
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._password = password.encode("utf-8") if isinstance(password, str) else bytes(password)
        self.chunk_size = chunk_size
        self.iterations = iterations

    def wrap_writer(self, dst: BinaryIO) -> BinaryIO:
        """Return a writable stream that encrypts into `dst`.

        The header is written immediately. Closing the returned stream seals
        the final frame; `dst` is left open.
        """
        return _EncryptingWriter(dst, self._password, self.chunk_size, self.iterations)

    def wrap_reader(self, src: BinaryIO) -> BinaryIO:
        """Return a readable stream that decrypts `src` frame by frame.

        Raises IntegrityError on read when the data was tampered with,
        truncated or sealed under another password.
        """
        # Frames written with a larger chunk size are still accepted
        max_frame = max(self.chunk_size, 64 * 1024 * 1024) + TAG_SIZE
        return _DecryptingReader(src, self._password, self.iterations, max_frame)

    def __repr__(self) -> str:
        return f"ChunkedGCMCrypter(chunk_size={self.chunk_size}, iterations={self.iterations})"
