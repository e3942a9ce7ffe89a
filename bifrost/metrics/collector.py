"""
Bifrost Prometheus Metrics Collector

Schedule cache instrumentation rendered in the Prometheus text exposition
format: builds, build failures, build time, hits, misses, evictions and the
number of cached epochs.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Tuple, Union


@dataclass
class _Metric:
    name: str
    help: str = ""
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    kind = "untyped"

    def _header(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.help}"] if self.help else []
        lines.append(f"# TYPE {self.name} {self.kind}")
        return lines


@dataclass
class Counter(_Metric):
    """Monotonically increasing counter."""
    _value: float = 0.0

    kind = "counter"

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError(f"{self.name}: counters cannot decrease")
        with self._lock:
            self._value += amount

    @property
    def value(self) -> float:
        return self._value

    def expose(self) -> str:
        return "\n".join(self._header() + [f"{self.name} {self._value}"])


@dataclass
class Gauge(_Metric):
    """Point-in-time value."""
    _value: float = 0.0

    kind = "gauge"

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    @property
    def value(self) -> float:
        return self._value

    def expose(self) -> str:
        return "\n".join(self._header() + [f"{self.name} {self._value}"])


# Schedule builds for mainnet-sized epochs take tens to hundreds of milliseconds
BUILD_SECONDS_BUCKETS: Tuple[float, ...] = (
    0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0,
)


@dataclass
class Histogram(_Metric):
    """Observation histogram; `buckets` are upper bounds, +Inf is implicit."""
    buckets: Tuple[float, ...] = BUILD_SECONDS_BUCKETS
    _counts: List[int] = field(default_factory=list, repr=False)
    _sum: float = 0.0
    _count: int = 0

    kind = "histogram"

    def __post_init__(self):
        self.buckets = tuple(sorted(self.buckets))
        self._counts = [0] * len(self.buckets)

    def observe(self, value: float) -> None:
        with self._lock:
            self._sum += value
            self._count += 1
            for i, bound in enumerate(self.buckets):
                if value <= bound:
                    self._counts[i] += 1
                    break

    @contextmanager
    def time(self) -> Iterator[None]:
        """Observe the wall time of the enclosed block."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - started)

    @property
    def count(self) -> int:
        return self._count

    @property
    def sum(self) -> float:
        return self._sum

    def expose(self) -> str:
        lines = self._header()
        running = 0
        for bound, hits in zip(self.buckets, self._counts):
            running += hits
            lines.append(f'{self.name}_bucket{{le="{bound}"}} {running}')
        lines.append(f'{self.name}_bucket{{le="+Inf"}} {self._count}')
        lines.append(f"{self.name}_sum {self._sum}")
        lines.append(f"{self.name}_count {self._count}")
        return "\n".join(lines)


Metric = Union[Counter, Gauge, Histogram]


class MetricsRegistry:
    """Named metrics rendered together by `expose()`."""

    def __init__(self):
        self._metrics: Dict[str, Metric] = {}
        self._lock = threading.Lock()

    def register(self, metric: Metric) -> Metric:
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"Metric already registered: {metric.name}")
            self._metrics[metric.name] = metric
        return metric

    @property
    def metric_count(self) -> int:
        return len(self._metrics)

    def expose(self) -> str:
        with self._lock:
            parts = [metric.expose() for metric in self._metrics.values()]
        return "\n\n".join(parts) + "\n"


class ScheduleMetrics:
    """
    Metrics updated by a ScheduleCache.

    Create one per cache and pass it in; names share the given prefix.
    """

    def __init__(self, prefix: str = "bifrost"):
        self.registry = MetricsRegistry()

        def metric(cls, suffix: str, help_text: str):
            return self.registry.register(cls(f"{prefix}_schedule_{suffix}", help_text))

        self.builds_total = metric(Counter, "builds_total", "Leader schedules built")
        self.build_failures_total = metric(
            Counter, "build_failures_total", "Leader schedule builds that raised"
        )
        self.build_seconds = metric(
            Histogram, "build_seconds", "Leader schedule build time in seconds"
        )
        self.cache_hits_total = metric(
            Counter, "cache_hits_total", "Lookups served from an already built schedule"
        )
        self.cache_misses_total = metric(
            Counter, "cache_misses_total", "Lookups that triggered or waited on a build"
        )
        self.evictions_total = metric(
            Counter, "evictions_total", "Schedules dropped from the cache"
        )
        self.cached_epochs = metric(Gauge, "cached_epochs", "Epochs currently held in the cache")

    def expose(self) -> str:
        return self.registry.expose()
