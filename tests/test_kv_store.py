import portalocker
import pytest

from peer_chat.errors import PersistenceError
from peer_chat.repositories import JsonFileKeyValueStore, MemoryKeyValueStore


def test_file_store_round_trips_and_removes(tmp_path):
    store = JsonFileKeyValueStore(tmp_path / "data")

    assert store.get("peerchat_profile") is None
    store.set("peerchat_profile", b'{"username": "nova"}')

    assert store.get("peerchat_profile") == b'{"username": "nova"}'
    assert (tmp_path / "data" / "peerchat_profile.json").exists()

    store.remove("peerchat_profile")
    assert store.get("peerchat_profile") is None
    store.remove("peerchat_profile")


def test_file_store_leaves_no_temp_files(tmp_path):
    store = JsonFileKeyValueStore(tmp_path)
    store.set("peerchat_chats", b"{}")
    store.set("peerchat_chats", b'{"user-1": []}')

    leftovers = [p.name for p in tmp_path.iterdir() if ".tmp-" in p.name]
    assert leftovers == []
    assert store.get("peerchat_chats") == b'{"user-1": []}'


def test_file_store_sanitizes_keys(tmp_path):
    store = JsonFileKeyValueStore(tmp_path)
    store.set("../escape/key", b"1")
    assert store.get("../escape/key") == b"1"
    assert list(tmp_path.parent.glob("escape*")) == []


def test_file_store_maps_lock_timeout_to_persistence_error(tmp_path, monkeypatch):
    class FailingLock:
        def __init__(self, *args, **kwargs):
            pass

        def __enter__(self):
            raise portalocker.exceptions.LockException("busy")

        def __exit__(self, *exc):
            return False

    monkeypatch.setattr(portalocker, "Lock", FailingLock)
    store = JsonFileKeyValueStore(tmp_path)

    with pytest.raises(PersistenceError):
        store.set("peerchat_contacts", b"[]")
    assert store.get("peerchat_contacts") is None


def test_memory_store_enforces_quota_per_total_size():
    store = MemoryKeyValueStore(capacity_bytes=10)
    store.set("a", b"12345")
    store.set("a", b"1234567890")
    with pytest.raises(PersistenceError):
        store.set("b", b"1")
    store.remove("a")
    store.set("b", b"1")
    assert store.get("b") == b"1"
