"""Service registration in a key-value store, kept fresh with call metrics."""

from __future__ import annotations

import logging
import threading
from typing import Any

from rpcplug.converter import bytes_to_str
from rpcplug.kvstore import StoreError
from rpcplug.metrics import Registry
from rpcplug.net import map_to_meta, meta_to_map

logger = logging.getLogger(__name__)


class RegisterPlugin:
    """Registers services at ``BASE/serviceName/serviceAddress`` in a key-value store.

    ``store`` is any object with the methods of :class:`rpcplug.kvstore.MemoryStore`.
    With a positive ``update_interval`` (seconds), :meth:`start` runs a background
    refresh that rewrites every node with the current call and connection rates.
    """

    _kind = "kv"
    _strip_leading_slash = True

    def __init__(
        self,
        service_address: str = "",
        base_path: str = "",
        store: Any = None,
        metrics: Registry | None = None,
        update_interval: float = 0.0,
    ) -> None:
        self.service_address = service_address
        self.base_path = base_path
        self.store = store
        self.metrics = metrics
        self.update_interval = update_interval
        self.services: list[str] = []
        self._metas: dict[str, str] = {}
        self._lock = threading.Lock()
        self._dying = threading.Event()
        self._refresher: threading.Thread | None = None

    def _create_store(self) -> Any:
        raise StoreError(f"cannot create {self._kind} registry: no store configured")

    def _ensure_store(self) -> Any:
        if self.store is None:
            try:
                self.store = self._create_store()
            except StoreError as exc:
                logger.error("cannot create %s registry: %s", self._kind, exc)
                raise
        if self._strip_leading_slash and self.base_path.startswith("/"):
            self.base_path = self.base_path[1:]
        return self.store

    def _node_path(self, name: str) -> str:
        return f"{self.base_path}/{name}/{self.service_address}"

    def _ttl(self) -> float:
        return self.update_interval * 2

    def _put_dir(self, store: Any, path: str, value: bytes) -> None:
        try:
            store.put(path, value, is_dir=True)
        except StoreError as exc:
            logger.error("cannot create %s path %s: %s", self._kind, path, exc)
            raise

    def _put_node(self, store: Any, path: str, metadata: str) -> None:
        try:
            store.put(path, metadata.encode(), ttl=self._ttl())
        except StoreError as exc:
            logger.error("cannot create %s path %s: %s", self._kind, path, exc)
            raise

    def start(self) -> None:
        """Connect to the store, create the base path and start the refresh loop."""
        store = self._ensure_store()
        self._put_dir(store, self.base_path, b"rpcx_path")
        if self.update_interval > 0 and (
            self._refresher is None or not self._refresher.is_alive()
        ):
            self._dying.clear()
            self._refresher = threading.Thread(
                target=self._run, name=f"{self._kind}-registry-refresh", daemon=True
            )
            self._refresher.start()

    def _run(self) -> None:
        try:
            while not self._dying.wait(self.update_interval):
                self.refresh()
        finally:
            self.store.close()

    def refresh(self) -> None:
        """Rewrite every registered node with the current metrics, re-creating lost nodes."""
        store = self._ensure_store()
        extra: dict[str, str] = {}
        if self.metrics is not None:
            calls = self.metrics.get_or_register_meter("calls").rate_mean()
            connections = self.metrics.get_or_register_meter("connections").rate_mean()
            extra["calls"] = f"{calls:.2f}"
            extra["connections"] = f"{connections:.2f}"

        with self._lock:
            services = list(self.services)
            metas = dict(self._metas)

        for name in services:
            path = self._node_path(name)
            try:
                pair = store.get(path)
            except StoreError as exc:
                logger.warning("can't get data of node: %s, will re-create, because of %s", path, exc)
                try:
                    store.put(path, metas.get(name, "").encode(), ttl=self._ttl())
                except StoreError as put_exc:
                    logger.error("cannot re-create %s path %s: %s", self._kind, path, put_exc)
                continue
            values = meta_to_map(bytes_to_str(pair.value))
            values.update(extra)
            try:
                store.put(path, map_to_meta(values).encode(), ttl=self._ttl())
            except StoreError as exc:
                logger.debug("cannot refresh %s path %s: %s", self._kind, path, exc)

    def stop(self) -> None:
        """Remove every registered node and stop the refresh loop."""
        store = self._ensure_store()
        with self._lock:
            services = list(self.services)
        for name in services:
            path = self._node_path(name)
            try:
                exists = store.exists(path)
            except StoreError as exc:
                logger.error("cannot delete path %s: %s", path, exc)
                continue
            if exists:
                try:
                    store.delete(path)
                except StoreError as exc:
                    logger.debug("cannot delete path %s: %s", path, exc)
                logger.info("delete path %s", path)

        self._dying.set()
        if self._refresher is not None:
            self._refresher.join()
            self._refresher = None

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        if self.metrics is not None:
            self.metrics.get_or_register_meter("connections").mark(1)
        return conn, True

    def pre_call(self, ctx: Any, service_path: str, service_method: str, args: Any) -> Any:
        if self.metrics is not None:
            self.metrics.get_or_register_meter("calls").mark(1)
        return args

    def register(self, name: str, rcvr: Any, metadata: str) -> None:
        """Register the service ``name`` with its metadata."""
        if not name.strip():
            raise ValueError("Register service `name` can't be empty")
        store = self._ensure_store()
        self._put_dir(store, self.base_path, b"rpcx_path")
        self._put_dir(store, f"{self.base_path}/{name}", name.encode())
        self._put_node(store, self._node_path(name), metadata)
        with self._lock:
            self.services.append(name)
            self._metas[name] = metadata

    def register_function(self, service_name: str, fname: str, fn: Any, metadata: str) -> None:
        self.register(service_name, fn, metadata)

    def unregister(self, name: str) -> None:
        """Remove the service ``name``; nothing happens when no service is registered."""
        if not self.services:
            return
        if not name.strip():
            raise ValueError("Unregister service `name` can't be empty")
        store = self._ensure_store()
        self._put_dir(store, self.base_path, b"rpcx_path")
        self._put_dir(store, f"{self.base_path}/{name}", name.encode())
        path = self._node_path(name)
        try:
            store.delete(path)
        except StoreError as exc:
            logger.error("cannot remove %s path %s: %s", self._kind, path, exc)
            raise
        with self._lock:
            self.services = [service for service in self.services if service != name]
            self._metas.pop(name, None)