import io
import socket

import pytest

from rpcplug.tee import TeeConn, TeeConnPlugin


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def test_received_data_is_copied(pair):
    client, server = pair
    sink = io.BytesIO()
    tee, ok = TeeConnPlugin(sink).handle_conn_accept(server)
    assert ok is True
    client.sendall(b"hello")
    assert tee.recv(1024) == b"hello"
    assert sink.getvalue() == b"hello"


def test_no_writer_copies_nothing(pair):
    client, server = pair
    tee, ok = TeeConnPlugin().handle_conn_accept(server)
    client.sendall(b"data")
    assert ok is True
    assert tee.recv(1024) == b"data"


def test_update_applies_to_new_connections(pair):
    client, server = pair
    plugin = TeeConnPlugin()
    first, _ = plugin.handle_conn_accept(server)
    sink = io.BytesIO()
    plugin.update(sink)
    client.sendall(b"abc")
    assert first.recv(1024) == b"abc"
    assert sink.getvalue() == b""
    second, _ = plugin.handle_conn_accept(server)
    client.sendall(b"xyz")
    assert second.recv(1024) == b"xyz"
    assert sink.getvalue() == b"xyz"


def test_eof_writes_nothing(pair):
    client, server = pair
    sink = io.BytesIO()
    tee = TeeConn(server, sink)
    client.shutdown(socket.SHUT_WR)
    assert tee.recv(1024) == b""
    assert sink.getvalue() == b""


def test_closed_writer_does_not_break_recv(pair):
    client, server = pair
    sink = io.BytesIO()
    sink.close()
    tee = TeeConn(server, sink)
    client.sendall(b"ok")
    assert tee.recv(1024) == b"ok"


def test_other_attributes_delegate(pair):
    _, server = pair
    tee = TeeConn(server, None)
    assert tee.fileno() == server.fileno()
    with pytest.raises(AttributeError):
        tee.no_such_attribute