"""In-process metrics and a server plugin that records connection and call metrics."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from typing import Any, TypeVar, Union

START_REQUEST_CONTEXT_KEY = "__start_request_time"

_MAX_CALL_TIME_NS = 30 * 60 * 1_000_000_000
_SAMPLE_SIZE = 1028


class Counter:
    """A monotonically adjustable integer count."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def inc(self, n: int = 1) -> None:
        with self._lock:
            self._count += n


class Meter:
    """Counts events and reports their mean rate per second since creation."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._start = clock()
        self._lock = threading.Lock()
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def mark(self, n: int = 1) -> None:
        with self._lock:
            self._count += n

    def rate_mean(self) -> float:
        """Events per second since the meter was created."""
        elapsed = self._clock() - self._start
        if elapsed <= 0:
            return 0.0
        return self._count / elapsed


class Histogram:
    """Records values; statistics are taken over the most recent samples."""

    def __init__(self, sample_size: int = _SAMPLE_SIZE) -> None:
        self._lock = threading.Lock()
        self._samples: deque[int | float] = deque(maxlen=sample_size)
        self._count = 0

    @property
    def count(self) -> int:
        """Number of values ever recorded."""
        return self._count

    def update(self, value: int | float) -> None:
        with self._lock:
            self._samples.append(value)
            self._count += 1

    def mean(self) -> float:
        with self._lock:
            if not self._samples:
                return 0.0
            return sum(self._samples) / len(self._samples)


Metric = Union[Counter, Meter, Histogram]
_M = TypeVar("_M", Counter, Meter, Histogram)


class Registry:
    """Named metrics, created on first use."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._metrics: dict[str, Metric] = {}

    def _get_or_register(self, name: str, kind: type[_M], factory: Callable[[], _M]) -> _M:
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = factory()
                self._metrics[name] = metric
        if not isinstance(metric, kind):
            raise TypeError(
                f"metric {name!r} is a {type(metric).__name__}, not a {kind.__name__}"
            )
        return metric

    def get_or_register_counter(self, name: str) -> Counter:
        return self._get_or_register(name, Counter, Counter)

    def get_or_register_meter(self, name: str) -> Meter:
        return self._get_or_register(name, Meter, lambda: Meter(self._clock))

    def get_or_register_histogram(self, name: str) -> Histogram:
        return self._get_or_register(name, Histogram, Histogram)

    def items(self) -> list[tuple[str, Metric]]:
        """All registered metrics as (name, metric) pairs, sorted by name."""
        with self._lock:
            return sorted(self._metrics.items())


class MetricsPlugin:
    """Collects service registrations, connections, request and response rates and call times."""

    def __init__(self, registry: Registry, prefix: str = "") -> None:
        self.registry = registry
        self.prefix = prefix

    def _name(self, name: str) -> str:
        return self.prefix + name

    def register(self, name: str, rcvr: Any, metadata: str) -> None:
        self.registry.get_or_register_counter(self._name("serviceCounter")).inc(1)

    def handle_conn_accept(self, conn: Any) -> tuple[Any, bool]:
        self.registry.get_or_register_meter(self._name("clientMeter")).mark(1)
        return conn, True

    def pre_read_request(self, ctx: Any) -> None:
        return None

    def post_read_request(self, ctx: Any, request: Any, error: Any) -> None:
        path = request.service_path
        if not path:
            return
        name = f"service.{path}.{request.service_method}.Read_Qps"
        self.registry.get_or_register_meter(self._name(name)).mark(1)

    def post_write_response(self, ctx: Any, request: Any, response: Any, error: Any) -> None:
        path = response.service_path
        if not path:
            return
        base = f"service.{path}.{response.service_method}"
        self.registry.get_or_register_meter(self._name(base + ".Write_Qps")).mark(1)

        started = ctx.value(START_REQUEST_CONTEXT_KEY) if ctx is not None else None
        if isinstance(started, int) and started > 0:
            elapsed = time.time_ns() - started
            if elapsed < _MAX_CALL_TIME_NS:
                self.registry.get_or_register_histogram(self._name(base + ".CallTime")).update(
                    elapsed
                )