"""Comprehensive tests for LocalStorage backend."""

import io
from datetime import datetime
from pathlib import Path

import pytest

from storecrypt import Context, ContextCanceled, LocalStorage, NotFoundError, TransportError
from storecrypt import local as local_module


def put_bytes(storage, path, data):
    storage.put(path, io.BytesIO(data))


class TestLocalStorageInit:
    """Test LocalStorage initialization."""

    def test_create_with_string_path(self, temp_dir: Path):
        """Test initialization with string path."""
        storage = LocalStorage(str(temp_dir))
        # Use resolve() to handle symlinks (e.g., /var -> /private/var on macOS)
        assert storage.base_dir == temp_dir.resolve()

    def test_create_with_path_object(self, temp_dir: Path):
        """Test initialization with Path object."""
        storage = LocalStorage(temp_dir)
        assert storage.base_dir == temp_dir.resolve()

    def test_create_missing_dir_auto(self, temp_dir: Path):
        """Test automatic creation of missing directory."""
        new_dir = temp_dir / "new_storage"
        storage = LocalStorage(new_dir, create_if_missing=True)
        assert new_dir.exists()
        assert storage.base_dir == new_dir.resolve()

    def test_create_missing_dir_raises(self, temp_dir: Path):
        """Test error when directory missing and create_if_missing=False."""
        new_dir = temp_dir / "nonexistent"
        with pytest.raises(ValueError, match="does not exist"):
            LocalStorage(new_dir, create_if_missing=False)

    def test_path_is_file_raises(self, temp_dir: Path):
        """Test error when path points to a file, not directory."""
        file_path = temp_dir / "file.txt"
        file_path.write_text("test")
        with pytest.raises(ValueError, match="not a directory"):
            LocalStorage(file_path)


class TestLocalStoragePutGet:
    """Test put() and get()."""

    def test_put_creates_parents(self, backend_dir: Path, test_content: bytes):
        """Test put creates missing parent directories."""
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "a/b/c.bin", test_content)
        assert (backend_dir / "a" / "b" / "c.bin").read_bytes() == test_content

    def test_put_overwrites(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "x", b"first")
        put_bytes(storage, "x", b"second")
        assert (backend_dir / "x").read_bytes() == b"second"

    def test_get_returns_stream(self, backend_dir: Path, large_test_content: bytes):
        """Test get returns a readable stream the caller closes."""
        (backend_dir / "big").write_bytes(large_test_content)
        storage = LocalStorage(backend_dir)
        with storage.get("big") as f:
            assert f.read() == large_test_content

    def test_get_missing_raises(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        with pytest.raises(NotFoundError, match="nope"):
            storage.get("nope")

    def test_get_directory_raises(self, backend_dir: Path):
        """Test get on a directory is a transport error, not a file."""
        (backend_dir / "dir").mkdir()
        storage = LocalStorage(backend_dir)
        with pytest.raises(TransportError):
            storage.get("dir")

    def test_fsync_on_write(self, backend_dir: Path, monkeypatch):
        """Test fsync is called when fsync_on_write is set."""
        synced = []
        monkeypatch.setattr(local_module.os, "fsync", lambda fd: synced.append(fd))

        LocalStorage(backend_dir, fsync_on_write=False).put("a", io.BytesIO(b"x"))
        assert synced == []

        LocalStorage(backend_dir, fsync_on_write=True).put("b", io.BytesIO(b"x"))
        assert len(synced) == 1

    def test_path_traversal_rejected(self, backend_dir: Path):
        """Test paths resolving outside base_dir raise ValueError."""
        storage = LocalStorage(backend_dir)
        with pytest.raises(ValueError, match="outside base directory"):
            put_bytes(storage, "../../escape", b"x")
        assert storage.exists("../../etc/passwd") is False

    def test_get_path(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        assert storage.get_path("a/b") == str(backend_dir.resolve() / "a" / "b")


class TestLocalStorageList:
    """Test list(), list_info() and list_top_level_dirs()."""

    def test_list_recursive(self, backend_dir: Path):
        """Test list returns every file under the prefix, root-relative."""
        storage = LocalStorage(backend_dir)
        for name in ("wal/0001", "wal/sub/0002", "other/x"):
            put_bytes(storage, name, b"x")
        assert storage.list("wal") == ["wal/0001", "wal/sub/0002"]
        assert sorted(storage.list("")) == ["other/x", "wal/0001", "wal/sub/0002"]

    def test_list_missing_prefix(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        assert storage.list("missing") == []

    def test_list_file_prefix(self, backend_dir: Path):
        """Test a prefix naming a file lists just that file."""
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "wal/0001", b"x")
        assert storage.list("wal/0001") == ["wal/0001"]

    def test_list_info(self, backend_dir: Path, test_content: bytes):
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "dir/file", test_content)
        infos = storage.list_info("dir")
        assert len(infos) == 1
        assert infos[0].path == "dir/file"
        assert infos[0].size == len(test_content)
        assert isinstance(infos[0].mod_time, datetime)
        assert infos[0].mod_time.tzinfo is not None

    def test_list_top_level_dirs(self, backend_dir: Path):
        """Test immediate sub-directories come back root-relative."""
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "list/1/2/file", b"x")
        put_bytes(storage, "list/1/3/deeper/file", b"x")
        put_bytes(storage, "list/1/plain", b"x")
        assert storage.list_top_level_dirs("list/1") == {"list/1/2", "list/1/3"}
        assert storage.list_top_level_dirs("") == {"list"}

    def test_list_top_level_dirs_missing(self, backend_dir: Path):
        assert LocalStorage(backend_dir).list_top_level_dirs("missing") == set()


class TestLocalStorageDelete:
    """Test delete variants."""

    def test_delete_file(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "a", b"x")
        storage.delete("a")
        assert not (backend_dir / "a").exists()

    def test_delete_missing_raises(self, backend_dir: Path):
        """Test delete of a missing file raises NotFoundError."""
        storage = LocalStorage(backend_dir)
        with pytest.raises(NotFoundError):
            storage.delete("missing")

    def test_delete_directory_raises(self, backend_dir: Path):
        (backend_dir / "dir").mkdir()
        with pytest.raises(TransportError):
            LocalStorage(backend_dir).delete("dir")

    def test_delete_dir(self, backend_dir: Path):
        """Test delete_dir removes the tree and the directory itself."""
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "tree/a", b"x")
        put_bytes(storage, "tree/b/c", b"x")
        storage.delete_dir("tree")
        assert not (backend_dir / "tree").exists()

    def test_delete_dir_missing_ok(self, backend_dir: Path):
        LocalStorage(backend_dir).delete_dir("missing")

    def test_delete_dir_refuses_root(self, backend_dir: Path):
        with pytest.raises(ValueError):
            LocalStorage(backend_dir).delete_dir("")

    def test_delete_all_keeps_prefix(self, backend_dir: Path):
        """Test delete_all empties the prefix but keeps the directory."""
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "wal/0001", b"x")
        put_bytes(storage, "wal/sub/0002", b"x")
        put_bytes(storage, "keep", b"x")
        storage.delete_all("wal")
        assert (backend_dir / "wal").is_dir()
        assert list((backend_dir / "wal").iterdir()) == []
        assert storage.exists("keep")

    def test_delete_all_missing_ok(self, backend_dir: Path):
        LocalStorage(backend_dir).delete_all("missing")

    def test_delete_all_bulk(self, backend_dir: Path):
        """Test bulk delete removes files and trees, skipping missing ones."""
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "a", b"x")
        put_bytes(storage, "tree/b", b"x")
        put_bytes(storage, "c", b"x")
        storage.delete_all_bulk(["a", "tree", "missing"])
        assert storage.list("") == ["c"]

    def test_delete_all_bulk_refuses_root(self, backend_dir: Path):
        """Test a root entry is rejected before anything is deleted."""
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "a", b"x")
        with pytest.raises(ValueError, match="base directory"):
            storage.delete_all_bulk(["a", ""])
        assert backend_dir.is_dir()
        assert storage.exists("a")


class TestLocalStorageExistsRename:
    """Test exists() and rename()."""

    def test_exists(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "a/b", b"x")
        assert storage.exists("a/b") is True
        assert storage.exists("a") is False
        assert storage.exists("nope") is False

    def test_rename_creates_parent(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "old", b"payload")
        storage.rename("old", "new/dir/file")
        assert not (backend_dir / "old").exists()
        assert (backend_dir / "new" / "dir" / "file").read_bytes() == b"payload"

    def test_rename_overwrites_target(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "old", b"new content")
        put_bytes(storage, "target", b"old content")
        storage.rename("old", "target")
        assert (backend_dir / "target").read_bytes() == b"new content"

    def test_rename_missing_raises(self, backend_dir: Path):
        with pytest.raises(NotFoundError):
            LocalStorage(backend_dir).rename("missing", "other")

    def test_rename_same_path_noop(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        put_bytes(storage, "same", b"x")
        storage.rename("same", "same")
        assert (backend_dir / "same").read_bytes() == b"x"


class TestLocalStorageContext:

    def test_cancelled_context(self, backend_dir: Path):
        """Test a cancelled context stops operations before any I/O."""
        storage = LocalStorage(backend_dir)
        ctx = Context()
        ctx.cancel()
        with pytest.raises(ContextCanceled):
            storage.put("a", io.BytesIO(b"x"), ctx=ctx)
        assert not (backend_dir / "a").exists()
        with pytest.raises(ContextCanceled):
            storage.list("", ctx=ctx)

    def test_expired_deadline(self, backend_dir: Path):
        storage = LocalStorage(backend_dir)
        ctx = Context.with_timeout(-1)
        with pytest.raises(ContextCanceled, match="deadline"):
            storage.exists("a", ctx=ctx)
