import ipaddress

import pytest

from rpcplug.access import BlacklistPlugin, WhitelistPlugin


class FakeConn:
    def __init__(self, peer):
        self.peer = peer

    def getpeername(self):
        if isinstance(self.peer, Exception):
            raise self.peer
        return self.peer


def conn(host, port=4000):
    return FakeConn((host, port))


def test_blacklist_exact_ip_refused():
    plugin = BlacklistPlugin({"10.1.2.3"})
    c = conn("10.1.2.3")
    assert plugin.handle_conn_accept(c) == (c, False)


def test_blacklist_mask_refused():
    plugin = BlacklistPlugin(masks=["172.17.0.0/16"])
    assert plugin.handle_conn_accept(conn("172.17.4.5"))[1] is False


def test_blacklist_other_ip_accepted():
    plugin = BlacklistPlugin({"10.1.2.3"}, [ipaddress.ip_network("172.17.0.0/16")])
    assert plugin.handle_conn_accept(conn("192.168.1.1"))[1] is True


def test_blacklist_accepts_when_no_peer_address():
    plugin = BlacklistPlugin({"10.1.2.3"})
    assert plugin.handle_conn_accept(FakeConn(OSError("not connected")))[1] is True
    assert plugin.handle_conn_accept(FakeConn("/tmp/sock"))[1] is True


def test_whitelist_exact_ip_accepted():
    plugin = WhitelistPlugin({"10.1.2.3"})
    c = conn("10.1.2.3")
    assert plugin.handle_conn_accept(c) == (c, True)


def test_whitelist_mask_accepted():
    plugin = WhitelistPlugin(masks=["172.17.0.0/16"])
    assert plugin.handle_conn_accept(conn("172.17.200.1"))[1] is True


def test_whitelist_other_ip_refused():
    plugin = WhitelistPlugin({"10.1.2.3"}, ["172.17.0.0/16"])
    assert plugin.handle_conn_accept(conn("8.8.8.8"))[1] is False


def test_whitelist_refuses_when_no_peer_address():
    plugin = WhitelistPlugin({"10.1.2.3"})
    assert plugin.handle_conn_accept(FakeConn(OSError("not connected")))[1] is False


def test_ipv6_mask():
    plugin = WhitelistPlugin(masks=["fd00::/8"])
    assert plugin.handle_conn_accept(FakeConn(("fd00::1", 4000, 0, 0)))[1] is True
    assert plugin.handle_conn_accept(FakeConn(("fe80::1", 4000, 0, 0)))[1] is False


def test_ipv4_mapped_address_matches_ipv4_mask():
    plugin = BlacklistPlugin(masks=["172.17.0.0/16"])
    assert plugin.handle_conn_accept(conn("::ffff:172.17.0.9"))[1] is False


def test_invalid_mask_rejected():
    with pytest.raises(ValueError):
        BlacklistPlugin(masks=["not-a-network"])