"""Plugins that accept or refuse connections by the client's IP address."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from typing import Any, Union

_Network = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]
_Address = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _networks(masks: Iterable[Any] | None) -> list[_Network]:
    return [ipaddress.ip_network(mask, strict=False) for mask in masks or ()]


def _peer_host(conn: Any) -> str | None:
    """The remote host of ``conn``, or None if it has no IP peer address."""
    try:
        peer = conn.getpeername()
    except OSError:
        return None
    if isinstance(peer, tuple) and peer and isinstance(peer[0], str):
        return peer[0]
    return None


def _parse_ip(host: str) -> _Address | None:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


def _in_masks(host: str, masks: list[_Network]) -> bool:
    ip = _parse_ip(host)
    if ip is None:
        return False
    return any(ip.version == mask.version and ip in mask for mask in masks)


class BlacklistPlugin:
    """Refuses connections from listed addresses or networks; accepts all others."""

    def __init__(
        self, blacklist: Iterable[str] | None = None, masks: Iterable[Any] | None = None
    ) -> None:
        self.blacklist: set[str] = set(blacklist or ())
        self.masks = _networks(masks)

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        host = _peer_host(conn)
        if host is None:
            return conn, True
        if host in self.blacklist or _in_masks(host, self.masks):
            return conn, False
        return conn, True


class WhitelistPlugin:
    """Accepts connections only from listed addresses or networks."""

    def __init__(
        self, whitelist: Iterable[str] | None = None, masks: Iterable[Any] | None = None
    ) -> None:
        self.whitelist: set[str] = set(whitelist or ())
        self.masks = _networks(masks)

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        host = _peer_host(conn)
        if host is None:
            return conn, False
        if host in self.whitelist or _in_masks(host, self.masks):
            return conn, True
        return conn, False