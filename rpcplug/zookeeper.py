"""Service registration in ZooKeeper."""

from __future__ import annotations

import logging
import socket
import struct
import threading
from collections.abc import Iterable
from typing import Any

from rpcplug.kvstore import KeyNotFoundError, KVPair, StoreError
from rpcplug.metrics import Registry
from rpcplug.registry import RegisterPlugin

logger = logging.getLogger(__name__)

_OP_CREATE = 1
_OP_DELETE = 2
_OP_EXISTS = 3
_OP_GET_DATA = 4
_OP_SET_DATA = 5
_OP_PING = 11
_OP_CLOSE = -11

_XID_WATCH = -1
_XID_PING = -2

_ERR_NO_NODE = -101
_ERR_BAD_VERSION = -103
_ERR_NODE_EXISTS = -110

_PERM_ALL = 31
_EPHEMERAL = 1

_STAT = struct.Struct(">qqqqiiiqiiq")


class _NodeExistsError(StoreError):
    """The node to create is already there."""


def _int(value: int) -> bytes:
    return struct.pack(">i", value)


def _long(value: int) -> bytes:
    return struct.pack(">q", value)


def _buffer(data: bytes | None) -> bytes:
    if data is None:
        return _int(-1)
    return _int(len(data)) + bytes(data)


def _string(text: str) -> bytes:
    return _buffer(text.encode())


def _bool(flag: bool) -> bytes:
    return b"\x01" if flag else b"\x00"


_OPEN_ACL = _int(1) + _int(_PERM_ALL) + _string("world") + _string("anyone")


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def _take(self, size: int) -> bytes:
        chunk = self._data[self._pos:self._pos + size]
        if len(chunk) != size:
            raise StoreError("zookeeper: truncated reply")
        self._pos += size
        return chunk

    def int(self) -> int:
        return struct.unpack(">i", self._take(4))[0]

    def long(self) -> int:
        return struct.unpack(">q", self._take(8))[0]

    def buffer(self) -> bytes:
        size = self.int()
        return b"" if size < 0 else self._take(size)

    def stat_version(self) -> int:
        return _STAT.unpack(self._take(_STAT.size))[4]


def _error(code: int, path: str) -> StoreError:
    if code == _ERR_NO_NODE:
        return KeyNotFoundError(f"key not found: {path}")
    if code == _ERR_NODE_EXISTS:
        return _NodeExistsError(f"key already exists: {path}")
    if code == _ERR_BAD_VERSION:
        return StoreError(f"key modified since last read: {path}")
    return StoreError(f"zookeeper error {code} on {path}")


class _ZooKeeperStore:
    """Key-value store on a ZooKeeper session; keys with a TTL become ephemeral nodes."""

    def __init__(
        self,
        servers: Iterable[str],
        session_timeout: float = 10.0,
        connect_timeout: float = 5.0,
    ) -> None:
        failures: list[str] = []
        sock = None
        for server in servers:
            host, _, port = server.rpartition(":")
            try:
                sock = socket.create_connection(
                    (host.strip("[]") or "127.0.0.1", int(port)), connect_timeout
                )
                break
            except (OSError, ValueError) as exc:
                failures.append(f"{server}: {exc}")
        if sock is None:
            reason = "; ".join(failures) if failures else "no zookeeper servers given"
            raise StoreError(f"zookeeper: cannot connect: {reason}")
        self._sock = sock
        self._lock = threading.Lock()
        self._closing = threading.Event()
        self._xid = 0
        try:
            handshake = (
                _int(0) + _long(0) + _int(int(session_timeout * 1000))
                + _long(0) + _buffer(bytes(16)) + _bool(False)
            )
            self._sock.sendall(_int(len(handshake)) + handshake)
            reply = _Reader(self._read_frame())
        except OSError as exc:
            self._sock.close()
            raise StoreError(f"zookeeper: {exc}") from None
        reply.int()
        negotiated = reply.int()
        if negotiated <= 0:
            self._sock.close()
            raise StoreError("zookeeper: session expired")
        self._sock.settimeout(None)
        self._keepalive = threading.Thread(
            target=self._ping_loop, args=(negotiated / 1000 / 3,), daemon=True
        )
        self._keepalive.start()

    def _recv_exact(self, size: int) -> bytes:
        chunks = bytearray()
        while len(chunks) < size:
            chunk = self._sock.recv(size - len(chunks))
            if not chunk:
                raise OSError("connection closed by server")
            chunks += chunk
        return bytes(chunks)

    def _read_frame(self) -> bytes:
        size = struct.unpack(">i", self._recv_exact(4))[0]
        return self._recv_exact(size)

    def _request(self, op: int, body: bytes, path: str, xid: int | None = None) -> _Reader:
        with self._lock:
            if self._closing.is_set():
                raise StoreError("store is closed")
            if xid is None:
                self._xid += 1
                xid = self._xid
            frame = _int(xid) + _int(op) + body
            try:
                self._sock.sendall(_int(len(frame)) + frame)
                while True:
                    reply = _Reader(self._read_frame())
                    reply_xid = reply.int()
                    reply.long()
                    code = reply.int()
                    if reply_xid == _XID_WATCH:
                        continue
                    break
            except OSError as exc:
                self._closing.set()
                raise StoreError(f"zookeeper: {exc}") from None
        if code != 0:
            raise _error(code, path)
        return reply

    def _ping_loop(self, interval: float) -> None:
        while not self._closing.wait(interval):
            try:
                self._request(_OP_PING, b"", "", xid=_XID_PING)
            except StoreError:
                return

    @staticmethod
    def _normalize(key: str) -> str:
        return "/" + key.strip("/")

    def _stat(self, path: str) -> int | None:
        try:
            return self._request(_OP_EXISTS, _string(path) + _bool(False), path).stat_version()
        except KeyNotFoundError:
            return None

    def _create(self, path: str, data: bytes, ephemeral: bool) -> None:
        flags = _EPHEMERAL if ephemeral else 0
        body = _string(path) + _buffer(bytes(data)) + _OPEN_ACL + _int(flags)
        self._request(_OP_CREATE, body, path)

    def _create_parents(self, path: str) -> None:
        current = ""
        for part in path.strip("/").split("/")[:-1]:
            current += "/" + part
            if self._stat(current) is None:
                try:
                    self._create(current, b"", ephemeral=False)
                except _NodeExistsError:
                    pass

    def _set_data(self, path: str, value: bytes, version: int) -> int:
        body = _string(path) + _buffer(bytes(value)) + _int(version)
        return self._request(_OP_SET_DATA, body, path).stat_version()

    def put(self, key: str, value: bytes, is_dir: bool = False, ttl: float = 0) -> None:
        path = self._normalize(key)
        if self._stat(path) is None:
            self._create_parents(path)
            try:
                self._create(path, value, ephemeral=bool(ttl and ttl > 0))
                return
            except _NodeExistsError:
                pass
        self._set_data(path, value, -1)

    def get(self, key: str) -> KVPair:
        path = self._normalize(key)
        reply = self._request(_OP_GET_DATA, _string(path) + _bool(False), path)
        data = reply.buffer()
        return KVPair(key, data, reply.stat_version())

    def exists(self, key: str) -> bool:
        return self._stat(self._normalize(key)) is not None

    def delete(self, key: str) -> None:
        path = self._normalize(key)
        self._request(_OP_DELETE, _string(path) + _int(-1), path)

    def atomic_put(
        self, key: str, value: bytes, previous: KVPair | None = None, ttl: float = 0
    ) -> tuple[bool, KVPair]:
        """Create ``key`` if ``previous`` is None, else replace it only at ``previous``'s version."""
        path = self._normalize(key)
        if previous is None:
            self._create_parents(path)
            self._create(path, value, ephemeral=bool(ttl and ttl > 0))
            return True, self.get(key)
        version = self._set_data(path, value, previous.last_index)
        return True, KVPair(key, bytes(value), version)

    def close(self) -> None:
        if self._closing.is_set():
            return
        try:
            self._request(_OP_CLOSE, b"", "")
        except StoreError:
            pass
        self._closing.set()
        try:
            self._sock.close()
        except OSError:
            pass


class ZooKeeperRegisterPlugin(RegisterPlugin):
    """Registers services in ZooKeeper at ``BASE/serviceName/serviceAddress``.

    A leading slash of the base path is dropped. Without an explicit ``store``,
    a session with the first reachable of ``zookeeper_servers`` is opened when
    first needed.
    """

    _kind = "zk"
    _strip_leading_slash = True

    def __init__(
        self,
        service_address: str = "",
        zookeeper_servers: Iterable[str] | None = None,
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
        self.zookeeper_servers: list[str] = list(zookeeper_servers or ())

    def _create_store(self) -> Any:
        return _ZooKeeperStore(self.zookeeper_servers)

    def register(self, name: str, rcvr: Any, metadata: str) -> None:
        """Register ``name``, replacing any node left over at its path."""
        if not name.strip():
            raise ValueError("Register service `name` can't be empty")
        store = self._ensure_store()
        self._put_dir(store, self.base_path, b"rpcx_path")
        self._put_dir(store, f"{self.base_path}/{name}", name.encode())
        path = self._node_path(name)
        try:
            store.delete(path)
        except StoreError:
            pass
        try:
            store.atomic_put(path, metadata.encode(), None, ttl=self._ttl())
        except StoreError as exc:
            logger.error("cannot create zk path %s: %s", path, exc)
            raise
        with self._lock:
            self.services.append(name)
            self._metas[name] = metadata

    def unregister(self, name: str) -> None:
        if self.services and not name.strip():
            raise ValueError("Register service `name` can't be empty")
        super().unregister(name)