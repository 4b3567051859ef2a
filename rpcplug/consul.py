"""Service registration in a Consul key-value store."""

from __future__ import annotations

import base64
import json
import math
import urllib.error
import urllib.request
from collections.abc import Iterable
from typing import Any
from urllib.parse import quote, urlencode

from rpcplug.kvstore import KeyNotFoundError, KVPair, StoreError
from rpcplug.metrics import Registry
from rpcplug.registry import RegisterPlugin

_MIN_SESSION_TTL = 10


class _ConsulStore:
    """Key-value store backed by the Consul HTTP API; TTLs use Consul sessions."""

    def __init__(self, servers: Iterable[str], timeout: float = 5.0) -> None:
        servers = list(servers)
        if not servers:
            raise StoreError("no consul servers given")
        self._endpoint = f"http://{servers[0]}/v1"
        self._timeout = timeout
        self._closed = False

    def _call(
        self,
        method: str,
        path: str,
        query: dict[str, Any] | None = None,
        body: bytes | None = None,
    ) -> bytes:
        if self._closed:
            raise StoreError("store is closed")
        url = self._endpoint + path
        if query:
            url += "?" + urlencode(query)
        request = urllib.request.Request(url, data=body, method=method)
        try:
            with urllib.request.urlopen(request, timeout=self._timeout) as response:
                return response.read()
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                raise KeyNotFoundError(f"key not found: {path}") from None
            raise StoreError(f"consul: {exc.code} {exc.reason}") from None
        except (urllib.error.URLError, OSError) as exc:
            raise StoreError(f"consul: {exc}") from None

    @staticmethod
    def _kv_path(key: str) -> str:
        return "/kv/" + quote(key.strip("/"), safe="/@:")

    def _entry(self, key: str) -> dict[str, Any]:
        entries = json.loads(self._call("GET", self._kv_path(key)))
        if not entries:
            raise KeyNotFoundError(f"key not found: {key}")
        return entries[0]

    def _session(self, key: str, ttl: float) -> str:
        try:
            current = self._entry(key).get("Session")
        except KeyNotFoundError:
            current = None
        if current:
            self._call("PUT", f"/session/renew/{current}")
            return current
        seconds = max(_MIN_SESSION_TTL, math.ceil(ttl))
        body = json.dumps({"TTL": f"{seconds}s", "Behavior": "delete"}).encode()
        return json.loads(self._call("PUT", "/session/create", body=body))["ID"]

    def _write(self, key: str, value: bytes, query: dict[str, Any], ttl: float) -> bool:
        if ttl and ttl > 0:
            query["acquire"] = self._session(key, ttl)
        result = self._call("PUT", self._kv_path(key), query, bytes(value))
        return result.strip() == b"true"

    def put(self, key: str, value: bytes, is_dir: bool = False, ttl: float = 0) -> None:
        if not self._write(key, value, {}, ttl):
            raise StoreError(f"consul refused to write {key}")

    def get(self, key: str) -> KVPair:
        entry = self._entry(key)
        value = base64.b64decode(entry.get("Value") or "")
        return KVPair(key, value, int(entry.get("ModifyIndex", 0)))

    def exists(self, key: str) -> bool:
        try:
            self._entry(key)
        except KeyNotFoundError:
            return False
        return True

    def delete(self, key: str) -> None:
        self._entry(key)
        self._call("DELETE", self._kv_path(key))

    def atomic_put(
        self, key: str, value: bytes, previous: KVPair | None = None, ttl: float = 0
    ) -> tuple[bool, KVPair]:
        cas = 0 if previous is None else previous.last_index
        if not self._write(key, value, {"cas": cas}, ttl):
            raise StoreError(f"key modified or already exists: {key}")
        return True, self.get(key)

    def close(self) -> None:
        self._closed = True


class ConsulRegisterPlugin(RegisterPlugin):
    """Registers services in Consul at ``BASE/serviceName/serviceAddress``.

    Without an explicit ``store``, one talking to the first of ``consul_servers``
    is created when first needed.
    """

    _kind = "consul"
    _strip_leading_slash = True

    def __init__(
        self,
        service_address: str = "",
        consul_servers: Iterable[str] | None = None,
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
        self.consul_servers: list[str] = list(consul_servers or ())

    def _create_store(self) -> Any:
        return _ConsulStore(self.consul_servers)