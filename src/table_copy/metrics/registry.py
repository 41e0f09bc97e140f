"""
Prometheus metrics for copy sources, sinks and the transfer monitor.

All collectors live in the global REGISTRY; expose them with
prometheus_client.start_http_server() when a scrape endpoint is wanted.
"""

from prometheus_client import Counter, Gauge, Histogram

# --- Source / Sink Metrics ---

SOURCE_RECORDS_TOTAL = Counter(
    "table_copy_source_records_total",
    "Total number of records produced by sources",
    ["source"],
)

SINK_WRITES_TOTAL = Counter(
    "table_copy_sink_writes_total",
    "Total number of sink write groups by outcome",
    ["sink", "status"],
)

SINK_WRITE_LATENCY = Histogram(
    "table_copy_sink_write_latency_seconds",
    "Sink write group latency in seconds",
    ["sink"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
)

BACKOFF_EVENTS_TOTAL = Counter(
    "table_copy_backoff_events_total",
    "Total number of throttling or unprocessed-item backoffs",
    ["component"],
)

# --- Monitor Metrics ---

MONITOR_RATE = Gauge(
    "table_copy_monitor_rate_items_per_second",
    "Items written per second over the last monitor interval",
    ["task"],
)

MONITOR_IN_FLIGHT = Gauge(
    "table_copy_monitor_in_flight",
    "Items submitted to sinks and not yet confirmed",
    ["task"],
)


class MetricsRegistry:
    """Centralized access to all table copy metrics."""

    source_records_total = SOURCE_RECORDS_TOTAL
    sink_writes_total = SINK_WRITES_TOTAL
    sink_write_latency = SINK_WRITE_LATENCY
    backoff_events_total = BACKOFF_EVENTS_TOTAL
    monitor_rate = MONITOR_RATE
    monitor_in_flight = MONITOR_IN_FLIGHT


# Singleton instance
metrics_registry = MetricsRegistry()
