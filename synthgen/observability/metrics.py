"""Prometheus-compatible metrics for synthgen.

Collects execution and generation metrics on a private registry so that the
library never pollutes the default prometheus_client registry of a host
application:

- Workflow metrics (outcome, duration, active executions)
- Step metrics (attempts, outcomes, duration)
- Generation metrics (streams, points, clamped values, log entries)

Usage:
    from synthgen.observability.metrics import increment_counter, track_duration

    increment_counter("workflows_total", labels={"outcome": "succeeded"})

    with track_duration("stream_generation_seconds", labels={"pattern": "spike"}):
        generator.generate(request)
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


_registry = CollectorRegistry()

# Workflow metrics
workflows_total = Counter(
    "synthgen_workflows_total",
    "Total number of workflow executions by outcome",
    ["outcome"],
    registry=_registry,
)

workflow_duration_seconds = Histogram(
    "synthgen_workflow_duration_seconds",
    "Duration of workflow execution in seconds",
    ["outcome"],
    registry=_registry,
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 300.0, float("inf")),
)

workflows_active = Gauge(
    "synthgen_workflows_active",
    "Number of currently active workflow executions",
    registry=_registry,
)

# Step metrics
step_attempts_total = Counter(
    "synthgen_step_attempts_total",
    "Total number of step handler attempts by kind and result",
    ["kind", "result"],  # result: success, error, timeout
    registry=_registry,
)

steps_total = Counter(
    "synthgen_steps_total",
    "Total number of steps by final status",
    ["status"],  # completed, failed, skipped, rolled_back
    registry=_registry,
)

step_duration_seconds = Histogram(
    "synthgen_step_duration_seconds",
    "Duration of step execution in seconds",
    ["kind"],
    registry=_registry,
    buckets=(0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, float("inf")),
)

# Generation metrics
streams_generated_total = Counter(
    "synthgen_streams_generated_total",
    "Total number of metric streams generated",
    ["metric_type", "pattern"],
    registry=_registry,
)

points_generated_total = Counter(
    "synthgen_points_generated_total",
    "Total number of metric points generated",
    ["pattern"],
    registry=_registry,
)

values_clamped_total = Counter(
    "synthgen_values_clamped_total",
    "Non-finite pattern values replaced during generation",
    ["pattern"],
    registry=_registry,
)

stream_generation_seconds = Histogram(
    "synthgen_stream_generation_seconds",
    "Duration of single stream generation in seconds",
    ["pattern"],
    registry=_registry,
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, float("inf")),
)

log_entries_generated_total = Counter(
    "synthgen_log_entries_generated_total",
    "Total number of synthetic log entries generated by level",
    ["pattern", "level"],
    registry=_registry,
)


def increment_counter(
    metric_name: str,
    value: float = 1.0,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Increment a counter metric.

    Args:
        metric_name: Name of the counter (without synthgen_ prefix)
        value: Amount to increment by (default: 1.0)
        labels: Optional labels as key-value pairs

    Example:
        >>> increment_counter("steps_total", labels={"status": "completed"})
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Counter):
        if labels:
            metric.labels(**labels).inc(value)
        else:
            metric.inc(value)


def record_histogram(
    metric_name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Record a histogram observation.

    Args:
        metric_name: Name of the histogram (without synthgen_ prefix)
        value: Value to observe
        labels: Optional labels as key-value pairs
    """
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Histogram):
        if labels:
            metric.labels(**labels).observe(value)
        else:
            metric.observe(value)


def set_gauge(
    metric_name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Set a gauge metric value."""
    labels = labels or {}
    metric = _get_metric(metric_name)
    if metric and isinstance(metric, Gauge):
        if labels:
            metric.labels(**labels).set(value)
        else:
            metric.set(value)


@contextmanager
def track_duration(
    metric_name: str,
    labels: Optional[Dict[str, str]] = None,
) -> Iterator[None]:
    """Context manager to track duration of an operation.

    Args:
        metric_name: Name of the histogram metric (without synthgen_ prefix)
        labels: Optional labels as key-value pairs

    Example:
        >>> with track_duration("stream_generation_seconds", labels={"pattern": "leak"}):
        ...     generator.generate(request)
    """
    start_time = time.perf_counter()
    try:
        yield
    finally:
        record_histogram(metric_name, time.perf_counter() - start_time, labels)


def get_metrics_registry() -> CollectorRegistry:
    """Get the synthgen metrics registry."""
    return _registry


def export_metrics() -> bytes:
    """Get Prometheus text-format output of all synthgen metrics."""
    return generate_latest(_registry)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


def _get_metric(metric_name: str) -> Any:
    """Look up a module-level metric by name (prefix optional)."""
    if metric_name.startswith("synthgen_"):
        metric_name = metric_name[len("synthgen_"):]
    return globals().get(metric_name)


__all__ = [
    "increment_counter",
    "record_histogram",
    "set_gauge",
    "track_duration",
    "get_metrics_registry",
    "export_metrics",
    "get_metrics_content_type",
    "workflows_total",
    "workflow_duration_seconds",
    "workflows_active",
    "step_attempts_total",
    "steps_total",
    "step_duration_seconds",
    "streams_generated_total",
    "points_generated_total",
    "values_clamped_total",
    "stream_generation_seconds",
]
