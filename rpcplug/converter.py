"""Conversions between bytes and text, and metadata copying."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping


def bytes_to_str(data: bytes) -> str:
    """Turn bytes into text without losing any byte, even invalid UTF-8."""
    return bytes(data).decode("utf-8", errors="surrogateescape")


def str_to_bytes(text: str) -> bytes:
    """Inverse of :func:`bytes_to_str`."""
    return text.encode("utf-8", errors="surrogateescape")


def copy_meta(src: Mapping[str, str], dst: MutableMapping[str, str] | None) -> None:
    """Copy every entry of ``src`` into ``dst``; nothing happens if ``dst`` is None."""
    if dst is None:
        return
    dst.update(src)