import pytest

from rpcplug.kvstore import KeyNotFoundError, KVPair, MemoryStore, StoreError


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_put_get_round_trip():
    store = MemoryStore()
    store.put("base/svc", b"hello")
    pair = store.get("base/svc")
    assert pair.key == "base/svc"
    assert pair.value == b"hello"


def test_directory_put_keeps_value():
    store = MemoryStore()
    store.put("base", b"rpcx_path", is_dir=True)
    assert store.get("base").value == b"rpcx_path"


def test_get_missing_raises():
    store = MemoryStore()
    with pytest.raises(KeyNotFoundError):
        store.get("nope")


def test_missing_key_error_is_store_error():
    store = MemoryStore()
    with pytest.raises(StoreError):
        store.get("nope")


def test_exists():
    store = MemoryStore()
    store.put("a", b"1")
    assert store.exists("a") is True
    assert store.exists("b") is False


def test_delete():
    store = MemoryStore()
    store.put("a", b"1")
    store.delete("a")
    assert store.exists("a") is False
    with pytest.raises(KeyNotFoundError):
        store.delete("a")


def test_ttl_expiry():
    clock = FakeClock()
    store = MemoryStore(clock)
    store.put("a", b"1", ttl=10)
    clock.now = 9.5
    assert store.exists("a") is True
    clock.now = 10.0
    assert store.exists("a") is False
    with pytest.raises(KeyNotFoundError):
        store.get("a")


def test_no_ttl_never_expires():
    clock = FakeClock()
    store = MemoryStore(clock)
    store.put("a", b"1")
    clock.now = 1e9
    assert store.get("a").value == b"1"


def test_index_grows_with_each_write():
    store = MemoryStore()
    store.put("a", b"1")
    first = store.get("a")
    store.put("a", b"2")
    second = store.get("a")
    assert second.last_index > first.last_index
    assert second.value == b"2"


def test_atomic_put_creates_when_absent():
    store = MemoryStore()
    ok, pair = store.atomic_put("a", b"v", None)
    assert ok is True
    assert pair.value == b"v"
    assert store.get("a") == pair


def test_atomic_put_refuses_existing_without_previous():
    store = MemoryStore()
    store.put("a", b"v")
    with pytest.raises(StoreError):
        store.atomic_put("a", b"w", None)
    assert store.get("a").value == b"v"


def test_atomic_put_with_current_previous():
    store = MemoryStore()
    store.put("a", b"v")
    previous = store.get("a")
    ok, pair = store.atomic_put("a", b"w", previous)
    assert ok is True
    assert store.get("a").value == b"w"
    assert pair.last_index > previous.last_index


def test_atomic_put_with_stale_previous():
    store = MemoryStore()
    store.put("a", b"v")
    stale = store.get("a")
    store.put("a", b"x")
    with pytest.raises(StoreError):
        store.atomic_put("a", b"w", stale)
    assert store.get("a").value == b"x"


def test_atomic_put_previous_for_missing_key():
    store = MemoryStore()
    with pytest.raises(KeyNotFoundError):
        store.atomic_put("a", b"w", KVPair("a", b"v", 1))


def test_closed_store_refuses_operations():
    store = MemoryStore()
    store.put("a", b"1")
    store.close()
    assert store.closed is True
    with pytest.raises(StoreError):
        store.put("a", b"2")
    with pytest.raises(StoreError):
        store.get("a")