"""Path helpers shared by the wrappers and backends.

All storage paths use forward slashes and are relative to the backend root.
"""

import posixpath
from typing import Iterable, Optional


def to_slash(path: str) -> str:
    """Convert host separators to forward slashes."""
    return path.replace("\\", "/")


def clean(path: str) -> str:
    """Normalize a relative storage path.

    Collapses duplicate slashes and dot segments and strips leading and
    trailing slashes. The empty path (and ".") means the backend root.
    """
    path = to_slash(path).strip("/")
    if not path:
        return ""
    normalized = posixpath.normpath(path)
    return "" if normalized == "." else normalized


def join(*parts: str) -> str:
    """Join path parts with slashes, skipping empty ones."""
    return clean("/".join(p for p in parts if p))


def dir_prefix(prefix: str) -> str:
    """Return `prefix` with exactly one trailing slash ("" stays "")."""
    prefix = clean(prefix)
    return prefix + "/" if prefix else ""


def relative_to(path: str, base: str) -> str:
    """Strip `base` (a directory) from the front of `path`."""
    path = to_slash(path)
    base = to_slash(base).rstrip("/")
    if not base:
        return path.lstrip("/")
    if path == base:
        return ""
    if path.startswith(base + "/"):
        return path[len(base) + 1:]
    raise ValueError(f"Path '{path}' is not under '{base}'")


def strip_suffix(path: str, suffix: str) -> str:
    """Remove `suffix` from the end of `path` if present."""
    if suffix and path.endswith(suffix):
        return path[: -len(suffix)]
    return path


def matching_suffix(path: str, suffixes: Iterable[str]) -> Optional[str]:
    """Return the first non-empty suffix in `suffixes` that `path` ends with."""
    for suffix in suffixes:
        if suffix and path.endswith(suffix):
            return suffix
    return None
