"""Custom exceptions for storecrypt.

Every error raised by a backend or wrapper derives from StorageError, so
callers can catch the whole family at once. The specific kinds also derive
from the matching builtin (FileNotFoundError, ValueError, IOError) so code
that only knows the builtins keeps working.
"""


class StorageError(Exception):
    """Base exception for storage errors."""
    pass


class NotFoundError(StorageError, FileNotFoundError):
    """Raised when the requested logical or physical object is absent."""
    pass


class ConfigurationError(StorageError, ValueError):
    """Raised at construction time when the configuration cannot work.

    For example a write suffix that the supplied algorithms cannot produce.
    """
    pass


class AmbiguousNameError(StorageError, ValueError):
    """Raised in strict mode for a logical name that ends in a transform suffix."""
    pass


class TransportError(StorageError, IOError):
    """Raised for opaque backend failures (disk I/O, network, protocol)."""
    pass


class IntegrityError(TransportError):
    """Raised when encrypted data fails authentication or is truncated."""
    pass


class ContextCanceled(StorageError):
    """Raised when an operation's context was cancelled or its deadline passed."""
    pass
