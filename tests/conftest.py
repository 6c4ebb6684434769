"""Pytest configuration and fixtures for storecrypt tests."""

import io
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Generator, List, Tuple
from unittest.mock import MagicMock

import paramiko
import pytest
from botocore.exceptions import ClientError

from storecrypt import (
    Algorithms,
    ChunkedGCMCrypter,
    InMemoryStorage,
    StorageBackend,
    gzip_pair,
    zstd_pair,
)

# Keeps key derivation cheap in tests
FAST_ITERATIONS = 1000
TEST_CHUNK_SIZE = 1024


class RecordingStorage(StorageBackend):
    """Delegates to an inner backend and records every call.

    Each entry in `calls` is (method, args, ctx).
    """

    def __init__(self, inner: StorageBackend):
        self.inner = inner
        self.calls: List[Tuple[str, tuple, object]] = []

    def _call(self, method: str, *args, ctx=None):
        self.calls.append((method, args, ctx))
        return getattr(self.inner, method)(*args, ctx=ctx)

    def methods(self) -> List[str]:
        return [c[0] for c in self.calls]

    def put(self, path, stream, ctx=None):
        return self._call("put", path, stream, ctx=ctx)

    def get(self, path, ctx=None):
        return self._call("get", path, ctx=ctx)

    def list(self, prefix, ctx=None):
        return self._call("list", prefix, ctx=ctx)

    def list_info(self, prefix, ctx=None):
        return self._call("list_info", prefix, ctx=ctx)

    def delete(self, path, ctx=None):
        return self._call("delete", path, ctx=ctx)

    def delete_dir(self, path, ctx=None):
        return self._call("delete_dir", path, ctx=ctx)

    def delete_all(self, prefix, ctx=None):
        return self._call("delete_all", prefix, ctx=ctx)

    def delete_all_bulk(self, paths, ctx=None):
        return self._call("delete_all_bulk", list(paths), ctx=ctx)

    def exists(self, path, ctx=None):
        return self._call("exists", path, ctx=ctx)

    def list_top_level_dirs(self, prefix, ctx=None):
        return self._call("list_top_level_dirs", prefix, ctx=ctx)

    def rename(self, old_path, new_path, ctx=None):
        return self._call("rename", old_path, new_path, ctx=ctx)


class FailingStorage(RecordingStorage):
    """RecordingStorage that raises a configured error for (method, first arg)."""

    def __init__(self, inner: StorageBackend):
        super().__init__(inner)
        self.failures: Dict[Tuple[str, str], Exception] = {}

    def fail(self, method: str, path: str, error: Exception):
        self.failures[(method, path)] = error

    def _call(self, method: str, *args, ctx=None):
        error = self.failures.get((method, args[0] if args else None))
        if error is not None:
            self.calls.append((method, args, ctx))
            raise error
        return super()._call(method, *args, ctx=ctx)


class RemoteFile(io.FileIO):
    """Local file with the SFTPFile extras SFTPStorage uses."""

    def set_pipelined(self, pipelined=True):
        pass


class LocalSFTPClient:
    """The subset of paramiko.SFTPClient used by SFTPStorage, on local disk."""

    def __init__(self, root: Path):
        self.root = root
        self.closed = False

    def _local(self, path: str) -> Path:
        return self.root / path.lstrip("/")

    def stat(self, path):
        return paramiko.SFTPAttributes.from_stat(os.stat(self._local(path)))

    def listdir_attr(self, path="."):
        local = self._local(path)
        return [
            paramiko.SFTPAttributes.from_stat(os.stat(local / name), name)
            for name in os.listdir(local)
        ]

    def open(self, path, mode="r"):
        return RemoteFile(self._local(path), mode)

    def mkdir(self, path, mode=0o777):
        os.mkdir(self._local(path))

    def remove(self, path):
        os.remove(self._local(path))

    def rmdir(self, path):
        os.rmdir(self._local(path))

    def posix_rename(self, oldpath, newpath):
        os.replace(self._local(oldpath), self._local(newpath))

    def close(self):
        self.closed = True


def make_s3_client() -> MagicMock:
    """MagicMock boto3 S3 client backed by a dict of key -> bytes.

    Versioning is not modelled: each key has one version.
    """
    objects: Dict[str, bytes] = {}
    modified = datetime(2024, 1, 1, tzinfo=timezone.utc)
    client = MagicMock()
    client.objects = objects

    def missing(code: str, operation: str) -> ClientError:
        return ClientError({"Error": {"Code": code, "Message": "Not Found"}}, operation)

    def upload_fileobj(stream, bucket, key, Config=None):
        objects[key] = stream.read()

    def get_object(Bucket, Key):
        if Key not in objects:
            raise missing("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(objects[Key])}

    def head_object(Bucket, Key):
        if Key not in objects:
            raise missing("404", "HeadObject")
        return {"ContentLength": len(objects[Key])}

    def delete_object(Bucket, Key):
        objects.pop(Key, None)
        return {}

    def copy_object(Bucket, CopySource, Key):
        if CopySource["Key"] not in objects:
            raise missing("NoSuchKey", "CopyObject")
        objects[Key] = objects[CopySource["Key"]]
        return {}

    def delete_objects(Bucket, Delete):
        for identifier in Delete["Objects"]:
            objects.pop(identifier["Key"], None)
        return {}

    def get_paginator(name):
        def paginate(Bucket, Prefix="", Delimiter=None):
            keys = sorted(k for k in objects if k.startswith(Prefix))
            if name == "list_object_versions":
                return [{"Versions": [{"Key": k, "VersionId": "null"} for k in keys]}]
            if Delimiter:
                common = sorted({
                    Prefix + k[len(Prefix):].split(Delimiter, 1)[0] + Delimiter
                    for k in keys if Delimiter in k[len(Prefix):]
                })
                return [{"CommonPrefixes": [{"Prefix": p} for p in common]}]
            return [{"Contents": [
                {"Key": k, "LastModified": modified, "Size": len(objects[k])} for k in keys
            ]}]

        paginator = MagicMock()
        paginator.paginate.side_effect = paginate
        return paginator

    client.upload_fileobj.side_effect = upload_fileobj
    client.get_object.side_effect = get_object
    client.head_object.side_effect = head_object
    client.delete_object.side_effect = delete_object
    client.copy_object.side_effect = copy_object
    client.delete_objects.side_effect = delete_objects
    client.get_paginator.side_effect = get_paginator
    return client


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory that's cleaned up after the test."""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def backend_dir(temp_dir: Path) -> Path:
    """Create a directory for backend storage."""
    backend = temp_dir / "backend"
    backend.mkdir()
    return backend


@pytest.fixture
def test_content() -> bytes:
    """Generate test file content."""
    return b"This is test content for storecrypt testing."


@pytest.fixture
def large_test_content() -> bytes:
    """Content spanning many crypter chunks, partly incompressible."""
    return bytes(range(256)) * 200 + b"X" * 50_000


@pytest.fixture
def crypter() -> ChunkedGCMCrypter:
    return ChunkedGCMCrypter("correct horse battery staple",
                             chunk_size=TEST_CHUNK_SIZE, iterations=FAST_ITERATIONS)


@pytest.fixture
def algorithms(crypter) -> Algorithms:
    """Every capability configured."""
    return Algorithms(gzip=gzip_pair(), zstd=zstd_pair(), aes=crypter)


@pytest.fixture
def memory_backend() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def recording_backend(memory_backend) -> RecordingStorage:
    return RecordingStorage(memory_backend)


@pytest.fixture
def failing_backend(memory_backend) -> FailingStorage:
    return FailingStorage(memory_backend)


@pytest.fixture
def remote_root(temp_dir: Path) -> Path:
    """Local directory standing in for the SFTP server's filesystem."""
    return temp_dir / "remote"


@pytest.fixture
def sftp_client(remote_root: Path) -> LocalSFTPClient:
    (remote_root / "srv" / "wal").mkdir(parents=True)
    return LocalSFTPClient(remote_root)


@pytest.fixture
def s3_client() -> MagicMock:
    return make_s3_client()
