import hashlib

import pytest

from app.pms.storage import LocalStorage, S3Storage, StorageError, storage_from_config


def test_local_save_and_read(tmp_path):
    storage = LocalStorage(root=tmp_path)
    stored = storage.save("documents/1/abc/notes.txt", b"hello", content_type=None)
    assert stored.size == 5
    assert stored.sha256 == hashlib.sha256(b"hello").hexdigest()
    assert stored.content_type == "application/octet-stream"
    assert storage.exists("documents/1/abc/notes.txt")
    assert storage.read_bytes("/documents/1/abc/notes.txt") == b"hello"


def test_local_delete_is_quiet_for_missing_keys(tmp_path):
    storage = LocalStorage(root=tmp_path)
    storage.put_bytes("a.txt", b"x")
    storage.delete("a.txt")
    storage.delete("a.txt")
    assert not storage.exists("a.txt")
    with pytest.raises(StorageError):
        storage.open("a.txt")


def test_local_rejects_keys_outside_root(tmp_path):
    storage = LocalStorage(root=tmp_path / "root")
    with pytest.raises(StorageError):
        storage.put_bytes("../escape.txt", b"x")


def test_storage_from_config(tmp_path):
    local = storage_from_config({"STORAGE_BACKEND": "local", "LOCAL_STORAGE_ROOT": str(tmp_path)})
    assert isinstance(local, LocalStorage)
    assert local.root == tmp_path
    s3 = storage_from_config({"STORAGE_BACKEND": "S3", "S3_BUCKET": " leases ", "S3_REGION": None})
    assert isinstance(s3, S3Storage)
    assert s3.bucket == "leases"
    assert s3.region == "nyc3"
