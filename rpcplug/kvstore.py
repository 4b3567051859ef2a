"""Key-value store interface used by the service registries, with an in-memory store."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


class StoreError(Exception):
    """A key-value store operation failed."""


class KeyNotFoundError(StoreError):
    """The requested key does not exist."""


@dataclass(frozen=True)
class KVPair:
    """A stored value with the index of its last modification."""

    key: str
    value: bytes
    last_index: int


@dataclass
class _Entry:
    value: bytes
    index: int
    is_dir: bool
    expires_at: float | None


class MemoryStore:
    """A thread-safe key-value store kept in memory, with optional per-key TTLs."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._index = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("store is closed")

    def _live(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _write(self, key: str, value: bytes, is_dir: bool, ttl: float) -> KVPair:
        self._index += 1
        expires_at = self._clock() + ttl if ttl and ttl > 0 else None
        self._entries[key] = _Entry(bytes(value), self._index, is_dir, expires_at)
        return KVPair(key, bytes(value), self._index)

    def put(self, key: str, value: bytes, is_dir: bool = False, ttl: float = 0) -> None:
        """Store ``value`` under ``key``; a positive ``ttl`` makes it expire after that many seconds."""
        with self._lock:
            self._check_open()
            self._write(key, value, is_dir, ttl)

    def get(self, key: str) -> KVPair:
        with self._lock:
            self._check_open()
            entry = self._live(key)
            if entry is None:
                raise KeyNotFoundError(f"key not found: {key}")
            return KVPair(key, entry.value, entry.index)

    def exists(self, key: str) -> bool:
        with self._lock:
            self._check_open()
            return self._live(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._check_open()
            if self._live(key) is None:
                raise KeyNotFoundError(f"key not found: {key}")
            del self._entries[key]

    def atomic_put(
        self, key: str, value: bytes, previous: KVPair | None = None, ttl: float = 0
    ) -> tuple[bool, KVPair]:
        """Create ``key`` if ``previous`` is None, else replace it only if unchanged since ``previous``."""
        with self._lock:
            self._check_open()
            entry = self._live(key)
            if previous is None:
                if entry is not None:
                    raise StoreError(f"key already exists: {key}")
            else:
                if entry is None:
                    raise KeyNotFoundError(f"key not found: {key}")
                if entry.index != previous.last_index:
                    raise StoreError(f"key modified since last read: {key}")
            return True, self._write(key, value, False, ttl)

    def close(self) -> None:
        with self._lock:
            self._closed = True