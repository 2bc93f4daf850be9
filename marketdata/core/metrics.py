"""Prometheus collectors for the HTTP surface, snapshot cache, sources and tasks."""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

NAMESPACE = "marketdata"
# Upstream calls include retries with backoff, so the tail is long.
SOURCE_LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)

REGISTRY: CollectorRegistry
HTTP_REQUESTS_TOTAL: Counter
HTTP_REQUEST_DURATION: Histogram
CACHE_LOOKUPS_TOTAL: Counter
SOURCE_FETCHES_TOTAL: Counter
SOURCE_FETCH_DURATION: Histogram
TASK_RUNS_TOTAL: Counter


def _initialise_registry() -> None:
    global REGISTRY, HTTP_REQUESTS_TOTAL, HTTP_REQUEST_DURATION, CACHE_LOOKUPS_TOTAL
    global SOURCE_FETCHES_TOTAL, SOURCE_FETCH_DURATION, TASK_RUNS_TOTAL

    registry = CollectorRegistry(auto_describe=True)
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)

    HTTP_REQUESTS_TOTAL = Counter(
        "http_requests_total",
        "HTTP requests by route template, method and status",
        labelnames=("path", "method", "status"),
        namespace=NAMESPACE,
        registry=registry,
    )
    HTTP_REQUEST_DURATION = Histogram(
        "http_request_duration_seconds",
        "HTTP request latency by route template",
        labelnames=("path", "method"),
        namespace=NAMESPACE,
        registry=registry,
    )
    CACHE_LOOKUPS_TOTAL = Counter(
        "snapshot_cache_lookups_total",
        "Snapshot cache reads by timeframe and outcome",
        labelnames=("timeframe", "outcome"),
        namespace=NAMESPACE,
        registry=registry,
    )
    SOURCE_FETCHES_TOTAL = Counter(
        "source_fetches_total",
        "Upstream candle fetches by source and outcome",
        labelnames=("source", "outcome"),
        namespace=NAMESPACE,
        registry=registry,
    )
    SOURCE_FETCH_DURATION = Histogram(
        "source_fetch_duration_seconds",
        "Upstream candle fetch latency",
        labelnames=("source",),
        buckets=SOURCE_LATENCY_BUCKETS,
        namespace=NAMESPACE,
        registry=registry,
    )
    TASK_RUNS_TOTAL = Counter(
        "task_runs_total",
        "Sync and analytics task executions by status",
        labelnames=("task", "status"),
        namespace=NAMESPACE,
        registry=registry,
    )

    REGISTRY = registry


_initialise_registry()


def render_metrics() -> bytes:
    return generate_latest(REGISTRY)


def observe_request(path: str, method: str, status: int, latency_seconds: float) -> None:
    HTTP_REQUESTS_TOTAL.labels(path=path, method=method, status=str(status)).inc()
    HTTP_REQUEST_DURATION.labels(path=path, method=method).observe(latency_seconds)


def record_cache_lookup(timeframe: str, outcome: str) -> None:
    """Count a cache read as ``hit``, ``miss`` or ``expired``."""

    CACHE_LOOKUPS_TOTAL.labels(timeframe=timeframe, outcome=outcome).inc()


def record_source_fetch(source: str, outcome: str, latency_seconds: float) -> None:
    SOURCE_FETCHES_TOTAL.labels(source=source, outcome=outcome).inc()
    SOURCE_FETCH_DURATION.labels(source=source).observe(latency_seconds)


def record_task_run(task: str, status: str) -> None:
    TASK_RUNS_TOTAL.labels(task=task, status=status).inc()


def reset_metrics() -> None:
    """Swap in a fresh registry so tests start from zero."""

    _initialise_registry()


__all__ = [
    "CONTENT_TYPE_LATEST",
    "REGISTRY",
    "observe_request",
    "record_cache_lookup",
    "record_source_fetch",
    "record_task_run",
    "render_metrics",
    "reset_metrics",
]
