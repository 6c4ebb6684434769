"""Cancellation and deadline signal passed through every storage call.

The wrappers never act on a Context themselves; they hand it unchanged to
each backend call they make. Backends call check() at their I/O boundaries.
"""

import threading
import time
from typing import Optional

from .errors import ContextCanceled


class Context:
    """Carries an optional deadline and a cancellation flag.

    Example:
        ```python
        ctx = Context.with_timeout(30)
        storage.put("wal/0001", stream, ctx=ctx)

        # From another thread
        ctx.cancel()
        ```

    Args:
        deadline: Absolute deadline on the time.monotonic() clock (None = no deadline)
    """

    def __init__(self, deadline: Optional[float] = None):
        self.deadline = deadline
        self._cancelled = threading.Event()

    @classmethod
    def with_timeout(cls, seconds: float) -> "Context":
        """Create a context whose deadline is `seconds` from now."""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self):
        """Mark the context as cancelled."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None if there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self):
        """Raise ContextCanceled if cancelled or past the deadline."""
        if self._cancelled.is_set():
            raise ContextCanceled("context canceled")
        if self.deadline is not None and time.monotonic() >= self.deadline:
            raise ContextCanceled("context deadline exceeded")

    def __repr__(self) -> str:
        return f"Context(deadline={self.deadline}, cancelled={self.cancelled})"


def check(ctx: Optional[Context]):
    """Check `ctx` if one was given."""
    if ctx is not None:
        ctx.check()
