"""
SFTP storage backend.

Stores objects as files below a base directory on a remote host reached over
SSH (paramiko).
"""

import logging
import posixpath
import shutil
import stat
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import BinaryIO, Iterator, List, Optional, Set, Tuple

import paramiko

from . import paths as pathutil
from .base import FileInfo, StorageBackend
from .context import Context, check
from .errors import NotFoundError, StorageError, TransportError

logger = logging.getLogger(__name__)

COPY_BUFSIZE = 32 * 1024


@contextmanager
def _sftp_errors(remote_path: str, action: str):
    """Translate paramiko/OS errors raised inside the block into storage errors."""
    try:
        yield
    except StorageError:
        raise
    except FileNotFoundError as e:
        raise NotFoundError(f"Remote file not found: {remote_path}") from e
    except (OSError, paramiko.SSHException) as e:
        raise TransportError(f"Failed to {action} '{remote_path}': {e}") from e


class SFTPStorage(StorageBackend):
    """
    Storage backend on a remote host via SFTP.

    Example:
        >>> with SFTPStorage.connect("backup.example.org", "wal", key_filename="~/.ssh/id_ed25519",
        ...                          base_dir="/srv/wal") as storage:
        ...     storage.put("0001", open("segment", "rb"))
        ...     storage.list("")
        ['0001']

    Args:
        sftp_client: Open paramiko SFTPClient
        base_dir: Remote directory all paths are relative to
    """

    def __init__(self, sftp_client: paramiko.SFTPClient, base_dir: str):
        self.client = sftp_client
        self.base_dir = pathutil.to_slash(base_dir).rstrip("/") or "/"
        self._ssh_client: Optional[paramiko.SSHClient] = None

    @classmethod
    def connect(
        cls,
        host: str,
        user: str,
        base_dir: str,
        port: int = 22,
        password: Optional[str] = None,
        key_filename: Optional[str] = None,
        timeout: float = 10.0,
    ) -> "SFTPStorage":
        """Open an SSH session and return a storage that owns it.

        Args:
            host: Remote hostname or IP
            user: SSH username
            base_dir: Remote base directory
            port: SSH port (default: 22)
            password: SSH password (optional, uses SSH keys if not provided)
            key_filename: Path to SSH private key (optional)
            timeout: Connection timeout in seconds

        Raises:
            TransportError: If the connection fails
        """
        ssh = paramiko.SSHClient()
        ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        connect_kwargs = {
            'hostname': host,
            'port': port,
            'username': user,
            'timeout': timeout,
            'look_for_keys': True,  # Try SSH agent and default keys
        }
        if password:
            connect_kwargs['password'] = password
        if key_filename:
            connect_kwargs['key_filename'] = key_filename

        try:
            ssh.connect(**connect_kwargs)
            sftp = ssh.open_sftp()
        except (OSError, paramiko.SSHException) as e:
            logger.error(f"Failed to connect to {user}@{host}:{port}: {e}")
            ssh.close()
            raise TransportError(f"Failed to connect to {user}@{host}:{port}: {e}") from e

        storage = cls(sftp, base_dir)
        storage._ssh_client = ssh
        return storage

    def close(self):
        """Close the SFTP session, and the SSH connection if this storage opened it."""
        self.client.close()
        if self._ssh_client is not None:
            self._ssh_client.close()
            self._ssh_client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _full_path(self, path: str) -> str:
        relative = pathutil.clean(path)
        if relative.startswith(".."):
            raise ValueError(f"Invalid path: '{path}' resolves outside base directory")
        return posixpath.join(self.base_dir, relative) if relative else self.base_dir

    def _relative(self, remote_path: str) -> str:
        return pathutil.relative_to(remote_path, self.base_dir)

    def _stat(self, remote_path: str) -> Optional[paramiko.SFTPAttributes]:
        try:
            return self.client.stat(remote_path)
        except FileNotFoundError:
            return None

    def mkdir_p(self, remote_path: str):
        """Create remote directory (like mkdir -p)."""
        remote_path = remote_path.rstrip('/')
        if not remote_path or self._stat(remote_path) is not None:
            return

        parent = posixpath.dirname(remote_path)
        if parent and parent != remote_path:
            self.mkdir_p(parent)

        try:
            self.client.mkdir(remote_path)
        except OSError:
            # Created concurrently by another process
            if self._stat(remote_path) is None:
                raise

    def _walk(self, root: str, ctx: Optional[Context]) -> Iterator[Tuple[str, paramiko.SFTPAttributes]]:
        """Yield (path, attributes) for every regular file below `root`."""
        for attr in sorted(self.client.listdir_attr(root), key=lambda a: a.filename):
            check(ctx)
            child = posixpath.join(root, attr.filename)
            if stat.S_ISDIR(attr.st_mode):
                yield from self._walk(child, ctx)
            elif stat.S_ISREG(attr.st_mode):
                yield child, attr

    def _files_under(self, prefix: str, ctx: Optional[Context]) -> List[Tuple[str, paramiko.SFTPAttributes]]:
        root = self._full_path(prefix)
        with _sftp_errors(root, "list"):
            attr = self._stat(root)
            if attr is None:
                return []
            if stat.S_ISREG(attr.st_mode):
                return [(root, attr)]
            return list(self._walk(root, ctx))

    def _remove_tree(self, remote_path: str, ctx: Optional[Context]):
        attr = self._stat(remote_path)
        if attr is None:
            return
        if not stat.S_ISDIR(attr.st_mode):
            self.client.remove(remote_path)
            return
        for child in self.client.listdir_attr(remote_path):
            check(ctx)
            self._remove_tree(posixpath.join(remote_path, child.filename), ctx)
        self.client.rmdir(remote_path)

    def put(self, path: str, stream: BinaryIO, ctx: Optional[Context] = None) -> None:
        check(ctx)
        remote_path = self._full_path(path)
        with _sftp_errors(remote_path, "write"):
            self.mkdir_p(posixpath.dirname(remote_path))
            with self.client.open(remote_path, "wb") as f:
                f.set_pipelined(True)
                shutil.copyfileobj(stream, f, COPY_BUFSIZE)
        logger.debug(f"Uploaded {remote_path}")

    def get(self, path: str, ctx: Optional[Context] = None) -> BinaryIO:
        check(ctx)
        remote_path = self._full_path(path)
        with _sftp_errors(remote_path, "read"):
            return self.client.open(remote_path, "rb")

    def list(self, prefix: str, ctx: Optional[Context] = None) -> List[str]:
        check(ctx)
        return [self._relative(p) for p, _ in self._files_under(prefix, ctx)]

    def list_info(self, prefix: str, ctx: Optional[Context] = None) -> List[FileInfo]:
        check(ctx)
        return [
            FileInfo(
                path=self._relative(p),
                mod_time=datetime.fromtimestamp(attr.st_mtime or 0, tz=timezone.utc),
                size=attr.st_size or 0,
            )
            for p, attr in self._files_under(prefix, ctx)
        ]

    def delete(self, path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        remote_path = self._full_path(path)
        with _sftp_errors(remote_path, "delete"):
            self.client.remove(remote_path)
        logger.debug(f"Deleted {remote_path}")

    def delete_dir(self, path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        remote_path = self._full_path(path)
        if remote_path == self.base_dir:
            raise ValueError("Refusing to delete the storage base directory")
        with _sftp_errors(remote_path, "delete"):
            self._remove_tree(remote_path, ctx)

    def delete_all(self, prefix: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        remote_path = self._full_path(prefix)
        with _sftp_errors(remote_path, "delete"):
            attr = self._stat(remote_path)
            if attr is None or not stat.S_ISDIR(attr.st_mode):
                return
            for child in self.client.listdir_attr(remote_path):
                check(ctx)
                self._remove_tree(posixpath.join(remote_path, child.filename), ctx)

    def delete_all_bulk(self, paths: List[str], ctx: Optional[Context] = None) -> None:
        remote_paths = [self._full_path(path) for path in paths]
        if self.base_dir in remote_paths:
            raise ValueError("Refusing to delete the storage base directory")

        last_error: Optional[StorageError] = None
        for remote_path in remote_paths:
            check(ctx)
            try:
                with _sftp_errors(remote_path, "delete"):
                    self._remove_tree(remote_path, ctx)
            except NotFoundError:
                continue
            except TransportError as e:
                logger.warning(str(e))
                last_error = e
        if last_error is not None:
            raise last_error

    def exists(self, path: str, ctx: Optional[Context] = None) -> bool:
        check(ctx)
        remote_path = self._full_path(path)
        with _sftp_errors(remote_path, "stat"):
            attr = self._stat(remote_path)
        return attr is not None and stat.S_ISREG(attr.st_mode)

    def list_top_level_dirs(self, prefix: str, ctx: Optional[Context] = None) -> Set[str]:
        check(ctx)
        remote_path = self._full_path(prefix)
        with _sftp_errors(remote_path, "list"):
            attr = self._stat(remote_path)
            if attr is None or not stat.S_ISDIR(attr.st_mode):
                return set()
            return {
                self._relative(posixpath.join(remote_path, child.filename))
                for child in self.client.listdir_attr(remote_path)
                if stat.S_ISDIR(child.st_mode)
            }

    def rename(self, old_path: str, new_path: str, ctx: Optional[Context] = None) -> None:
        check(ctx)
        source = self._full_path(old_path)
        dest = self._full_path(new_path)
        if source == dest:
            return
        with _sftp_errors(source, "rename"):
            if self._stat(source) is None:
                raise NotFoundError(f"Remote file not found: {source}")
            self.mkdir_p(posixpath.dirname(dest))
            self.client.posix_rename(source, dest)
        logger.debug(f"Renamed {source} -> {dest}")

    def __repr__(self) -> str:
        return f"SFTPStorage(base_dir='{self.base_dir}')"
