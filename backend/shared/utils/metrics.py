"""
Lightweight metrics collection for the reconciliation core.
Wraps prometheus_client; every collector here is advisory telemetry.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.config import get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
COMPARISONS = Counter(
    "sr_comparisons_total",
    "Total comparison runs",
    ["kind"],
)
DISCREPANCIES = Counter(
    "sr_discrepancies_total",
    "Total field discrepancies reported",
    ["kind"],
)
RULE_USAGE_WRITES = Counter(
    "sr_rule_usage_writes_total",
    "Mapping rule usage-counter writes",
    ["status"],
)

# ── Histograms ──────────────────────────────────────────────────────────
COMPARISON_LATENCY = Histogram(
    "sr_comparison_seconds",
    "Time to run a single comparison",
    ["kind"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# ── Gauges ──────────────────────────────────────────────────────────────
MATCH_PERCENTAGE = Gauge(
    "sr_match_percentage",
    "Match percentage of the most recent comparison",
    ["kind"],
)


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Iterator[None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        histogram.labels(**labels).observe(elapsed)


def start_metrics_server(port: int | None = None) -> None:
    """Start the Prometheus metrics HTTP server."""
    settings = get_settings()
    if not settings.metrics_enabled:
        return
    metrics_port = port or settings.metrics_port
    try:
        start_http_server(metrics_port)
        logger.info("metrics_server_started", port=metrics_port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=metrics_port)
