import time

import pytest

from rpcplug.kvstore import MemoryStore, StoreError
from rpcplug.metrics import Registry
from rpcplug.registry import RegisterPlugin

ADDRESS = "tcp@127.0.0.1:8972"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_plugin(**kwargs):
    options = {"service_address": ADDRESS, "base_path": "base", "store": MemoryStore()}
    options.update(kwargs)
    return RegisterPlugin(**options)


def test_register_writes_nodes():
    plugin = make_plugin()
    plugin.register("Arith", object(), "group=a")
    store = plugin.store
    assert store.get("base").value == b"rpcx_path"
    assert store.get("base/Arith").value == b"Arith"
    assert store.get(f"base/Arith/{ADDRESS}").value == b"group=a"
    assert plugin.services == ["Arith"]


@pytest.mark.parametrize("name", ["", "   "])
def test_register_empty_name(name):
    plugin = make_plugin()
    with pytest.raises(ValueError):
        plugin.register(name, None, "")
    assert plugin.services == []


def test_no_store_configured():
    plugin = RegisterPlugin(service_address=ADDRESS, base_path="base")
    with pytest.raises(StoreError):
        plugin.start()


def test_start_strips_leading_slash():
    plugin = make_plugin(base_path="/rpcx_test")
    plugin.start()
    assert plugin.base_path == "rpcx_test"
    assert plugin.store.get("rpcx_test").value == b"rpcx_path"


def test_unregister_removes_service():
    plugin = make_plugin()
    plugin.register("A", None, "")
    plugin.register("B", None, "")
    plugin.unregister("A")
    assert plugin.services == ["B"]
    assert plugin.store.exists(f"base/A/{ADDRESS}") is False
    assert plugin.store.exists(f"base/B/{ADDRESS}") is True


def test_unregister_without_services_does_nothing():
    plugin = RegisterPlugin(service_address=ADDRESS, base_path="base")
    plugin.unregister("A")
    assert plugin.store is None
    assert plugin.services == []


def test_unregister_empty_name():
    plugin = make_plugin()
    plugin.register("A", None, "")
    with pytest.raises(ValueError):
        plugin.unregister(" ")
    assert plugin.services == ["A"]


def test_unregister_unknown_node_raises():
    plugin = make_plugin()
    plugin.register("A", None, "")
    with pytest.raises(StoreError):
        plugin.unregister("B")
    assert plugin.services == ["A"]


def test_refresh_adds_metrics():
    plugin = make_plugin(metrics=Registry(clock=lambda: 0.0))
    plugin.register("A", None, "group=a")
    plugin.refresh()
    value = plugin.store.get(f"base/A/{ADDRESS}").value
    assert value == b"calls=0.00&connections=0.00&group=a"


def test_refresh_without_metrics_keeps_metadata():
    plugin = make_plugin()
    plugin.register("A", None, "group=a")
    plugin.refresh()
    assert plugin.store.get(f"base/A/{ADDRESS}").value == b"group=a"


def test_refresh_recreates_lost_node():
    plugin = make_plugin()
    plugin.register("A", None, "group=a")
    plugin.store.delete(f"base/A/{ADDRESS}")
    plugin.refresh()
    assert plugin.store.get(f"base/A/{ADDRESS}").value == b"group=a"


def test_node_ttl_is_twice_the_interval():
    clock = FakeClock()
    plugin = make_plugin(store=MemoryStore(clock), update_interval=5)
    plugin.register("A", None, "")
    path = f"base/A/{ADDRESS}"
    clock.now = 9
    assert plugin.store.exists(path) is True
    clock.now = 11
    assert plugin.store.exists(path) is False


def test_handle_conn_accept_marks_connections():
    metrics = Registry()
    plugin = make_plugin(metrics=metrics)
    conn = object()
    assert plugin.handle_conn_accept(conn) == (conn, True)
    assert metrics.get_or_register_meter("connections").count == 1


def test_pre_call_marks_calls():
    metrics = Registry()
    plugin = make_plugin(metrics=metrics)
    args = {"a": 1}
    assert plugin.pre_call(None, "A", "m", args) is args
    assert metrics.get_or_register_meter("calls").count == 1


def test_register_function_uses_service_name():
    plugin = make_plugin()
    plugin.register_function("Funcs", "add", lambda: None, "x=1")
    assert plugin.services == ["Funcs"]
    assert plugin.store.get(f"base/Funcs/{ADDRESS}").value == b"x=1"


def test_stop_removes_nodes():
    plugin = make_plugin()
    plugin.start()
    plugin.register("A", None, "")
    plugin.stop()
    assert plugin.store.exists(f"base/A/{ADDRESS}") is False
    assert plugin.store.exists("base") is True


def test_refresh_loop_and_stop_closes_store():
    plugin = make_plugin(metrics=Registry(), update_interval=0.01)
    plugin.start()
    plugin.register("A", None, "group=a")
    path = f"base/A/{ADDRESS}"
    deadline = time.monotonic() + 5
    refreshed = False
    while time.monotonic() < deadline and not refreshed:
        refreshed = b"calls=" in plugin.store.get(path).value
        time.sleep(0.01)
    assert refreshed is True
    plugin.stop()
    with pytest.raises(StoreError):
        plugin.store.get("base")