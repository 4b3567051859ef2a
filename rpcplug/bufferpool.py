"""A byte-buffer pool with size classes that double from a minimum to a maximum."""

from __future__ import annotations

import math
from collections import deque


class LimitedPool:
    """Pool of reusable ``bytearray`` buffers grouped into power-of-two size classes.

    Buffers larger than ``max_size`` are never pooled; requests for them get a
    fresh buffer.
    """

    def __init__(self, min_size: int, max_size: int) -> None:
        if min_size <= 0:
            raise ValueError("minSize must be positive")
        if max_size < min_size:
            raise ValueError("maxSize can't be less than minSize")
        self._min_size = min_size
        self._max_size = max_size
        sizes: list[int] = []
        current = min_size
        while current < max_size:
            sizes.append(current)
            current *= 2
        sizes.append(max_size)
        self._sizes = sizes
        self._pools: list[deque[bytearray]] = [deque() for _ in sizes]

    @property
    def min_size(self) -> int:
        return self._min_size

    @property
    def max_size(self) -> int:
        return self._max_size

    def _find_index(self, size: int) -> int | None:
        if size > self._max_size:
            return None
        idx = 0 if size <= 0 else math.ceil(math.log2(size / self._min_size))
        idx = max(idx, 0)
        if idx > len(self._sizes) - 1:
            return None
        return idx

    def _find_put_index(self, size: int) -> int | None:
        if size > self._max_size or size < self._min_size:
            return None
        idx = max(math.floor(math.log2(size / self._min_size)), 0)
        if idx > len(self._sizes) - 1:
            return None
        return idx

    def find_pool_size(self, size: int) -> int | None:
        """Size class a request of ``size`` bytes is served from, or None."""
        idx = self._find_index(size)
        return None if idx is None else self._sizes[idx]

    def find_put_pool_size(self, size: int) -> int | None:
        """Size class a returned buffer of ``size`` bytes goes to, or None."""
        idx = self._find_put_index(size)
        return None if idx is None else self._sizes[idx]

    def get(self, size: int) -> bytearray:
        """Return a buffer of exactly ``size`` bytes, reused where possible."""
        if size < 0:
            raise ValueError("size must not be negative")
        idx = self._find_index(size)
        if idx is None:
            return bytearray(size)
        try:
            buf = self._pools[idx].pop()
        except IndexError:
            buf = bytearray(self._sizes[idx])
        del buf[size:]
        return buf

    def put(self, buf: bytearray) -> None:
        """Give a buffer back to the pool; buffers outside the size range are dropped."""
        idx = self._find_put_index(len(buf))
        if idx is None:
            return
        self._pools[idx].append(buf)