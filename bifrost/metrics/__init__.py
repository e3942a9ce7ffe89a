"""
Bifrost Metrics Module

Prometheus-compatible metrics for the schedule cache.
"""

from .collector import (
    ScheduleMetrics,
    Counter,
    Gauge,
    Histogram,
    MetricsRegistry,
)

__all__ = [
    "ScheduleMetrics",
    "Counter",
    "Gauge",
    "Histogram",
    "MetricsRegistry",
]
