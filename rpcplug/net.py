"""Network helpers: free ports, rpc addresses, metadata strings, external IPs."""

from __future__ import annotations

import ipaddress
import re
import socket
from typing import NamedTuple
from urllib.parse import quote_plus, unquote_plus

import psutil

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_INTEGER = re.compile(r"[+-]?\d+")


class _RpcAddress(NamedTuple):
    network: str
    ip: str
    port: int


def get_free_port() -> int:
    """Return a TCP port on 127.0.0.1 that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _split_host_port(hostport: str) -> tuple[str, str]:
    def fail(reason: str) -> ValueError:
        return ValueError(f"address {hostport}: {reason}")

    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise fail("missing ']' in address")
        rest = hostport[end + 1:]
        if not rest:
            raise fail("missing port in address")
        if not rest.startswith(":"):
            raise fail("missing port in address")
        if ":" in rest[1:]:
            raise fail("too many colons in address")
        host, port = hostport[1:end], rest[1:]
        if "[" in hostport[1:]:
            raise fail("unexpected '[' in address")
        if "]" in rest:
            raise fail("unexpected ']' in address")
        return host, port

    host, sep, port = hostport.rpartition(":")
    if not sep:
        raise fail("missing port in address")
    if ":" in host:
        raise fail("too many colons in address")
    if "[" in hostport:
        raise fail("unexpected '[' in address")
    if "]" in hostport:
        raise fail("unexpected ']' in address")
    return host, port


def parse_rpcx_address(addr: str) -> _RpcAddress:
    """Split an address such as ``tcp@127.0.0.1:8972`` into network, ip and port."""
    at = addr.find("@")
    if at <= 0:
        raise ValueError(f"invalid rpcx address: {addr}")
    network, rest = addr[:at], addr[at + 1:]
    ip, port_text = _split_host_port(rest)
    if not _INTEGER.fullmatch(port_text):
        raise ValueError(f"invalid port {port_text!r} in address {addr}")
    return _RpcAddress(network, ip, int(port_text))


def _query_unescape(text: str) -> str:
    if _BAD_ESCAPE.search(text):
        raise ValueError(f"invalid URL escape in {text!r}")
    return unquote_plus(text)


def meta_to_map(meta: str) -> dict[str, str]:
    """Parse a query-encoded metadata string; the first value of a key wins.

    Malformed input yields an empty mapping.
    """
    result: dict[str, str] = {}
    if not meta:
        return result
    try:
        for part in meta.split("&"):
            if ";" in part:
                raise ValueError("invalid semicolon separator in query")
            if not part:
                continue
            key, _, value = part.partition("=")
            result.setdefault(_query_unescape(key), _query_unescape(value))
    except ValueError:
        return {}
    return result


def map_to_meta(meta: dict[str, str]) -> str:
    """Encode a mapping as a query string with keys in sorted order."""
    return "&".join(
        f"{quote_plus(key, safe='')}={quote_plus(meta[key], safe='')}"
        for key in sorted(meta)
    )


def _external_ip(accept_ipv6: bool) -> str:
    stats = psutil.net_if_stats()
    for name, addrs in psutil.net_if_addrs().items():
        stat = stats.get(name)
        if stat is None or not stat.isup:
            continue
        if "loopback" in (getattr(stat, "flags", "") or "").split(","):
            continue
        for entry in addrs:
            if entry.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            try:
                ip = ipaddress.ip_address(entry.address.split("%", 1)[0])
            except ValueError:
                continue
            if ip.is_loopback:
                continue
            if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
                ip = ip.ipv4_mapped
            if not accept_ipv6 and not isinstance(ip, ipaddress.IPv4Address):
                continue
            return str(ip)
    raise OSError("are you connected to the network?")


def external_ipv4() -> str:
    """First IPv4 address of an interface that is up and not loopback."""
    return _external_ip(accept_ipv6=False)


def external_ipv6() -> str:
    """First IP address, of either family, of an interface that is up and not loopback."""
    return _external_ip(accept_ipv6=True)