"""Gzip helpers for message payloads."""

from __future__ import annotations

import gzip


def zip_bytes(data: bytes) -> bytes:
    """Compress ``data`` into a gzip stream."""
    return gzip.compress(bytes(data), mtime=0)


def unzip_bytes(data: bytes) -> bytes:
    """Decompress a gzip stream.

    Raises EOFError for empty input and gzip.BadGzipFile for data that is not gzip.
    """
    if not data:
        raise EOFError("empty gzip stream")
    return gzip.decompress(bytes(data))