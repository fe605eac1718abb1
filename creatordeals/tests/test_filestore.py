"""Tests for the content-addressed upload store (storage/filestore.py)."""

import hashlib

from creatordeals.storage.filestore import FileStore


def test_put_and_get(tmp_path):
    store = FileStore(str(tmp_path))
    stored = store.put(b"hello", "Photo.PNG")
    assert stored.key == hashlib.sha256(b"hello").hexdigest() + ".png"
    assert stored.size == 5
    assert store.get(stored.key) == b"hello"
    assert store.exists(stored.key)


def test_files_are_sharded(tmp_path):
    store = FileStore(str(tmp_path))
    key = store.put(b"data", "a.pdf").key
    assert (tmp_path / key[:2] / key[2:4] / key).is_file()


def test_identical_content_shares_a_key(tmp_path):
    store = FileStore(str(tmp_path))
    assert store.put(b"same", "one.jpg").key == store.put(b"same", "two.jpg").key


def test_odd_extensions_are_dropped(tmp_path):
    store = FileStore(str(tmp_path))
    assert "." not in store.put(b"x", "archive.tar-gz").key
    assert "." not in store.put(b"y", "noext").key


def test_malformed_keys_are_rejected(tmp_path):
    store = FileStore(str(tmp_path))
    store.put(b"secret", "s.txt")
    for key in ("../../etc/passwd", "abc.png", "g" * 64, "a" * 64 + ".p/g", ""):
        assert store.get(key) is None
        assert not store.exists(key)


def test_delete(tmp_path):
    store = FileStore(str(tmp_path))
    key = store.put(b"gone", "g.png").key
    assert store.delete(key) is True
    assert store.get(key) is None
    assert store.delete(key) is False
