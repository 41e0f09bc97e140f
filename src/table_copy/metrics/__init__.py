from .registry import (
    BACKOFF_EVENTS_TOTAL,
    MONITOR_IN_FLIGHT,
    MONITOR_RATE,
    SINK_WRITE_LATENCY,
    SINK_WRITES_TOTAL,
    SOURCE_RECORDS_TOTAL,
    MetricsRegistry,
    metrics_registry,
)

__all__ = [
    "BACKOFF_EVENTS_TOTAL",
    "MONITOR_IN_FLIGHT",
    "MONITOR_RATE",
    "SINK_WRITE_LATENCY",
    "SINK_WRITES_TOTAL",
    "SOURCE_RECORDS_TOTAL",
    "MetricsRegistry",
    "metrics_registry",
]
