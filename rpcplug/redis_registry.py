"""Service registration in a Redis key-value store."""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Iterable
from typing import Any

from rpcplug.kvstore import KeyNotFoundError, KVPair, StoreError
from rpcplug.metrics import Registry
from rpcplug.registry import RegisterPlugin

logger = logging.getLogger(__name__)


class _RedisReplyError(StoreError):
    """An error reply sent by the Redis server."""


def _encode_arg(arg: Any) -> bytes:
    if isinstance(arg, (bytes, bytearray)):
        return bytes(arg)
    return str(arg).encode()


class _RedisStore:
    """Key-value store speaking the Redis protocol over a single connection."""

    def __init__(self, servers: Iterable[str], timeout: float = 5.0) -> None:
        servers = list(servers)
        if not servers:
            raise StoreError("no redis servers given")
        host, _, port = servers[0].rpartition(":")
        try:
            self._sock = socket.create_connection(
                (host.strip("[]") or "127.0.0.1", int(port)), timeout
            )
        except (OSError, ValueError) as exc:
            raise StoreError(f"redis: {exc}") from None
        self._reader = self._sock.makefile("rb")
        self._lock = threading.RLock()
        self._closed = False

    def _read_reply(self) -> Any:
        line = self._reader.readline()
        if not line.endswith(b"\r\n"):
            raise StoreError("redis: connection closed")
        kind, body = line[:1], line[1:-2]
        if kind == b"+":
            return body.decode()
        if kind == b"-":
            return _RedisReplyError(f"redis: {body.decode(errors='replace')}")
        if kind == b":":
            return int(body)
        if kind == b"$":
            size = int(body)
            if size < 0:
                return None
            data = self._reader.read(size + 2)
            if len(data) != size + 2:
                raise StoreError("redis: connection closed")
            return data[:-2]
        if kind == b"*":
            count = int(body)
            if count < 0:
                return None
            return [self._read_reply() for _ in range(count)]
        raise StoreError(f"redis: unexpected reply {line!r}")

    def _command(self, *args: Any) -> Any:
        payload = [f"*{len(args)}\r\n".encode()]
        for arg in args:
            data = _encode_arg(arg)
            payload.append(f"${len(data)}\r\n".encode() + data + b"\r\n")
        with self._lock:
            if self._closed:
                raise StoreError("store is closed")
            try:
                self._sock.sendall(b"".join(payload))
                reply = self._read_reply()
            except (OSError, ValueError) as exc:
                raise StoreError(f"redis: {exc}") from None
        if isinstance(reply, _RedisReplyError):
            raise reply
        return reply

    @staticmethod
    def _set_args(key: str, value: bytes, ttl: float) -> list[Any]:
        args: list[Any] = ["SET", key, bytes(value)]
        if ttl and ttl > 0:
            args += ["PX", max(1, int(ttl * 1000))]
        return args

    def put(self, key: str, value: bytes, is_dir: bool = False, ttl: float = 0) -> None:
        if self._command(*self._set_args(key, value, ttl)) != "OK":
            raise StoreError(f"redis refused to write {key}")

    def get(self, key: str) -> KVPair:
        value = self._command("GET", key)
        if value is None:
            raise KeyNotFoundError(f"key not found: {key}")
        return KVPair(key, value, 0)

    def exists(self, key: str) -> bool:
        return self._command("EXISTS", key) > 0

    def delete(self, key: str) -> None:
        if self._command("DEL", key) == 0:
            raise KeyNotFoundError(f"key not found: {key}")

    def atomic_put(
        self, key: str, value: bytes, previous: KVPair | None = None, ttl: float = 0
    ) -> tuple[bool, KVPair]:
        """Create ``key`` if ``previous`` is None, else replace it only if its value is unchanged."""
        if previous is None:
            if self._command(*self._set_args(key, value, ttl), "NX") is None:
                raise StoreError(f"key already exists: {key}")
            return True, KVPair(key, bytes(value), 0)
        with self._lock:
            self._command("WATCH", key)
            current = self._command("GET", key)
            if current is None:
                self._command("UNWATCH")
                raise KeyNotFoundError(f"key not found: {key}")
            if current != previous.value:
                self._command("UNWATCH")
                raise StoreError(f"key modified since last read: {key}")
            self._command("MULTI")
            self._command(*self._set_args(key, value, ttl))
            if self._command("EXEC") is None:
                raise StoreError(f"key modified since last read: {key}")
        return True, KVPair(key, bytes(value), 0)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            try:
                self._reader.close()
                self._sock.close()
            except OSError:
                pass


class RedisRegisterPlugin(RegisterPlugin):
    """Registers services in Redis at ``BASE/serviceName/serviceAddress``.

    The base path is used as given. Without an explicit ``store``, one talking
    to the first of ``redis_servers`` is created when first needed.
    """

    _kind = "redis"
    _strip_leading_slash = False

    def __init__(
        self,
        service_address: str = "",
        redis_servers: Iterable[str] | None = None,
        base_path: str = "",
        store: Any = None,
        metrics: Registry | None = None,
        update_interval: float = 0.0,
    ) -> None:
        super().__init__(
            service_address=service_address,
            base_path=base_path,
            store=store,
            metrics=metrics,
            update_interval=update_interval,
        )
        self.redis_servers: list[str] = list(redis_servers or ())

    def _create_store(self) -> Any:
        return _RedisStore(self.redis_servers)

    def _put_dir(self, store: Any, path: str, value: bytes) -> None:
        try:
            store.put(path, value, is_dir=True)
        except StoreError as exc:
            if "Not a file" in str(exc):
                return
            logger.error("cannot create redis path %s: %s", path, exc)
            raise

    def unregister(self, name: str) -> None:
        if self.services and not name.strip():
            raise ValueError("Register service `name` can't be empty")
        super().unregister(name)