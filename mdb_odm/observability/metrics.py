"""
In-process metrics for MDB_ODM.

Two kinds of measurements are kept:

* timing series: duration and outcome of lifecycle work (``connection.open``,
  ``connection.close``, ``connection.sync_indexes``), one series per
  operation name and tag set;
* counters: how many operations went through the buffer
  (``buffer.enqueued``, ``buffer.replayed``, ``buffer.rejected``,
  ``buffer.timed_out``).

Usage:
    from mdb_odm.observability import get_metrics_collector

    collector = get_metrics_collector()
    collector.get_operation_count("connection.open")
    collector.counter("buffer.timed_out")
"""

import functools
import inspect
import logging
import threading
import time
from collections import Counter, OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

SeriesKey = tuple[str, tuple[tuple[str, str], ...]]


def _series_label(key: SeriesKey) -> str:
    name, tags = key
    if not tags:
        return name
    return name + "{" + ",".join(f"{tag}={value}" for tag, value in tags) + "}"


@dataclass
class TimingSeries:
    """Durations and failures of one operation under one tag set."""

    name: str
    calls: int = 0
    failures: int = 0
    total_ms: float = 0.0
    fastest_ms: Optional[float] = None
    slowest_ms: float = 0.0
    last_seen: Optional[float] = None

    @property
    def mean_ms(self) -> float:
        return self.total_ms / self.calls if self.calls else 0.0

    def add(self, duration_ms: float, success: bool = True) -> None:
        self.calls += 1
        self.total_ms += duration_ms
        if self.fastest_ms is None or duration_ms < self.fastest_ms:
            self.fastest_ms = duration_ms
        self.slowest_ms = max(self.slowest_ms, duration_ms)
        if not success:
            self.failures += 1
        self.last_seen = time.time()

    def snapshot(self) -> dict[str, Any]:
        return {
            "operation": self.name,
            "calls": self.calls,
            "failures": self.failures,
            "mean_ms": round(self.mean_ms, 2),
            "fastest_ms": round(self.fastest_ms or 0.0, 2),
            "slowest_ms": round(self.slowest_ms, 2),
            "last_seen": self.last_seen,
        }


class MetricsCollector:
    """
    Thread-safe store of timing series and counters.

    Driver monitor threads and the event loop may record concurrently. The
    number of timing series is bounded: once ``max_series`` is reached the
    series recorded least recently is dropped.
    """

    def __init__(self, max_series: int = 1000) -> None:
        self._series: OrderedDict[SeriesKey, TimingSeries] = OrderedDict()
        self._counters: Counter[str] = Counter()
        self._lock = threading.Lock()
        self._max_series = max_series

    def record_operation(
        self, operation_name: str, duration_ms: float, success: bool = True, **tags: Any
    ) -> None:
        """
        Add one execution of ``operation_name`` to its series.

        Args:
            operation_name: Dotted operation name, e.g. ``connection.open``
            duration_ms: Duration in milliseconds
            success: False if the operation raised
            **tags: Labels splitting the series (``db_name``, ``connection_id``)
        """
        key: SeriesKey = (operation_name, tuple(sorted((k, str(v)) for k, v in tags.items())))
        with self._lock:
            series = self._series.get(key)
            if series is None:
                if len(self._series) >= self._max_series:
                    evicted, _ = self._series.popitem(last=False)
                    logger.debug(f"Dropping metrics series {_series_label(evicted)}")
                series = self._series[key] = TimingSeries(operation_name)
            else:
                self._series.move_to_end(key)
            series.add(duration_ms, success)

    def increment(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[counter] += amount

    def counter(self, counter: str) -> int:
        with self._lock:
            return self._counters[counter]

    def get_metrics(self, prefix: Optional[str] = None) -> dict[str, Any]:
        """
        Snapshot of every series and counter, optionally only names starting
        with ``prefix``.
        """
        with self._lock:
            operations = {
                _series_label(key): series.snapshot()
                for key, series in self._series.items()
                if prefix is None or key[0].startswith(prefix)
            }
            counters = {
                name: value
                for name, value in self._counters.items()
                if prefix is None or name.startswith(prefix)
            }
        return {"operations": operations, "counters": counters}

    def get_operation_count(self, operation_name: str) -> int:
        """Executions of ``operation_name`` summed over every tag set."""
        with self._lock:
            return sum(s.calls for (name, _), s in self._series.items() if name == operation_name)

    def get_error_count(self, operation_name: str) -> int:
        with self._lock:
            return sum(s.failures for (name, _), s in self._series.items() if name == operation_name)

    def reset(self) -> None:
        with self._lock:
            self._series.clear()
            self._counters.clear()


_metrics_collector: Optional[MetricsCollector] = None
_collector_lock = threading.Lock()


def get_metrics_collector() -> MetricsCollector:
    """Get or create the process-wide collector."""
    global _metrics_collector
    if _metrics_collector is None:
        with _collector_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def record_operation(
    operation_name: str, duration_ms: float, success: bool = True, **tags: Any
) -> None:
    get_metrics_collector().record_operation(operation_name, duration_ms, success, **tags)


def increment(counter: str, amount: int = 1) -> None:
    get_metrics_collector().increment(counter, amount)


def timed_operation(operation_name: str, **tags: Any):
    """
    Decorator recording the duration and outcome of a coroutine function.

    Usage:
        @timed_operation("connection.sync_indexes")
        async def sync_indexes(self):
            ...
    """

    def decorator(func: Callable) -> Callable:
        if not inspect.iscoroutinefunction(func):
            raise TypeError(f"timed_operation requires a coroutine function, got {func!r}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            started = time.perf_counter()
            success = False
            try:
                result = await func(*args, **kwargs)
                success = True
                return result
            finally:
                record_operation(
                    operation_name, (time.perf_counter() - started) * 1000, success, **tags
                )

        return wrapper

    return decorator
