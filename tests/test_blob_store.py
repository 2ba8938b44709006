from __future__ import annotations

from pathlib import Path

import pytest

from kanban_api.app.blobs import LocalBlobStore, safe_blob_name
from kanban_api.app.errors import StorageError


def test_put_writes_bytes_under_prefixed_path(tmp_path: Path) -> None:
    store = LocalBlobStore(tmp_path / "uploads")

    storage_path = store.put(b"hello", "notes.txt")

    assert storage_path.startswith("uploads/")
    assert storage_path.endswith("-notes.txt")
    assert (tmp_path / "uploads" / storage_path.split("/", 1)[1]).read_bytes() == b"hello"
    assert store.exists(storage_path)
    assert store.list_paths() == [storage_path]


def test_delete_removes_blob_and_reports_missing(tmp_path: Path) -> None:
    store = LocalBlobStore(tmp_path / "uploads")
    storage_path = store.put(b"hello", "notes.txt")

    store.delete(storage_path)

    assert not store.exists(storage_path)
    with pytest.raises(StorageError, match="does not exist"):
        store.delete(storage_path)


@pytest.mark.parametrize(
    "storage_path",
    ["uploads/../secret.txt", "../uploads/a.txt", "other/a.txt", "uploads/a/b.txt", "uploads"],
)
def test_paths_outside_store_are_rejected(tmp_path: Path, storage_path: str) -> None:
    store = LocalBlobStore(tmp_path / "uploads")

    assert store.exists(storage_path) is False
    with pytest.raises(StorageError, match="outside the blob store"):
        store.delete(storage_path)


def test_write_failure_raises_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "uploads"
    blocker.write_text("a file where the directory should be", encoding="utf-8")
    store = LocalBlobStore(blocker)

    with pytest.raises(StorageError, match="Failed to store"):
        store.put(b"hello", "notes.txt")


def test_safe_blob_name_strips_directories_and_odd_characters() -> None:
    assert safe_blob_name("../../etc/passwd") == "passwd"
    assert safe_blob_name("C:\\Users\\me\\report final.pdf") == "report_final.pdf"
    assert safe_blob_name("..") == "file"
    assert safe_blob_name("") == "file"
