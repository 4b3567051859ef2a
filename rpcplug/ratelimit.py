"""Token-bucket rate limiting for connections and requests."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any


class RequestLimitError(Exception):
    """Raised when a request arrives after the rate limit has been reached."""

    def __init__(self, message: str = "request reached rate limit") -> None:
        super().__init__(message)


class TokenBucket:
    """A bucket that starts full and gains one token every ``fill_interval`` seconds."""

    def __init__(
        self,
        fill_interval: float,
        capacity: int,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if fill_interval <= 0:
            raise ValueError("token bucket fill interval is not > 0")
        if capacity <= 0:
            raise ValueError("token bucket capacity is not > 0")
        self.fill_interval = fill_interval
        self.capacity = capacity
        self._clock = clock
        self._start = clock()
        self._latest_tick = 0
        self._available = capacity
        self._lock = threading.Lock()

    def _current_tick(self, now: float) -> int:
        return int((now - self._start) // self.fill_interval)

    def _adjust(self, tick: int) -> None:
        if self._available < self.capacity:
            self._available = min(self.capacity, self._available + (tick - self._latest_tick))
        self._latest_tick = tick

    def take_available(self, count: int) -> int:
        """Take up to ``count`` tokens without waiting; return how many were taken."""
        if count <= 0:
            return 0
        with self._lock:
            self._adjust(self._current_tick(self._clock()))
            if self._available <= 0:
                return 0
            taken = min(count, self._available)
            self._available -= taken
            return taken

    def wait(self, count: int) -> None:
        """Take ``count`` tokens, sleeping until they would have become available."""
        if count <= 0:
            return
        with self._lock:
            now = self._clock()
            tick = self._current_tick(now)
            self._adjust(tick)
            self._available -= count
            if self._available >= 0:
                return
            end_tick = tick - self._available
            delay = self._start + end_tick * self.fill_interval - now
        if delay > 0:
            time.sleep(delay)


class RateLimitingPlugin:
    """Limits how many connections are accepted per unit of time."""

    def __init__(self, fill_interval: float, capacity: int) -> None:
        self.fill_interval = fill_interval
        self.capacity = capacity
        self._bucket = TokenBucket(fill_interval, capacity)

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        return conn, self._bucket.take_available(1) > 0


class ReqRateLimitingPlugin:
    """Limits how many requests are handled per unit of time.

    When ``block`` is true, requests over the limit wait; otherwise they are
    refused with :class:`RequestLimitError`.
    """

    def __init__(self, fill_interval: float, capacity: int, block: bool = False) -> None:
        self.fill_interval = fill_interval
        self.capacity = capacity
        self.block = block
        self._bucket = TokenBucket(fill_interval, capacity)

    def post_read_request(self, ctx: Any, request: Any, error: Any) -> None:
        if self.block:
            self._bucket.wait(1)
            return
        if self._bucket.take_available(1) != 1:
            raise RequestLimitError()