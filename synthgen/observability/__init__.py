"""Observability for synthgen: structured logging and Prometheus metrics.

Components:
    - logging: Structured logging with structlog
    - metrics: Prometheus metrics on a private registry

Usage:
    from synthgen.observability import get_logger, increment_counter

    logger = get_logger(__name__)
    logger.info("workflow_started", workflow_id="wf-123")

    increment_counter("workflows_total", labels={"outcome": "succeeded"})
"""

from synthgen.observability.logging import (
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    get_logger,
    set_correlation_id,
)
from synthgen.observability.metrics import (
    export_metrics,
    get_metrics_registry,
    increment_counter,
    record_histogram,
    set_gauge,
    track_duration,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "increment_counter",
    "record_histogram",
    "set_gauge",
    "track_duration",
    "get_metrics_registry",
    "export_metrics",
]
