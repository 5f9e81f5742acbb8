"""
Tests for structured logging and metrics helpers.
"""

import importlib
import logging

import pytest

from synthgen.observability import (
    clear_correlation_id,
    export_metrics,
    get_correlation_id,
    get_logger,
    get_metrics_registry,
    increment_counter,
    record_histogram,
    set_correlation_id,
    set_gauge,
    track_duration,
)
import synthgen.observability.logging as logging_module
from synthgen.observability.logging import add_correlation_id, add_log_level
from synthgen.observability.metrics import get_metrics_content_type


@pytest.mark.unit
def test_correlation_id_lifecycle():
    generated = set_correlation_id()
    assert generated.startswith("corr-")
    assert get_correlation_id() == generated

    set_correlation_id("exec-abc")
    assert add_correlation_id(None, "info", {})["correlation_id"] == "exec-abc"

    clear_correlation_id()
    assert get_correlation_id() is None
    assert "correlation_id" not in add_correlation_id(None, "info", {})


@pytest.mark.unit
def test_add_log_level_normalises_warn():
    assert add_log_level(None, "warn", {})["level"] == "warning"


@pytest.mark.unit
def test_logger_accepts_keyword_context():
    logger = get_logger("synthgen.tests")
    logger.info("test_event", step_id="gen", attempt=1)


@pytest.mark.unit
def test_counter_and_histogram_helpers():
    registry = get_metrics_registry()
    labels = {"status": "skipped"}
    before = registry.get_sample_value("synthgen_steps_total", labels) or 0.0

    increment_counter("steps_total", labels=labels)
    increment_counter("steps_total", 2, labels=labels)

    assert registry.get_sample_value("synthgen_steps_total", labels) == before + 3

    count_before = (
        registry.get_sample_value("synthgen_step_duration_seconds_count", {"kind": "timing"}) or 0.0
    )
    record_histogram("step_duration_seconds", 0.02, labels={"kind": "timing"})
    with track_duration("step_duration_seconds", labels={"kind": "timing"}):
        pass
    assert (
        registry.get_sample_value("synthgen_step_duration_seconds_count", {"kind": "timing"})
        == count_before + 2
    )


@pytest.mark.unit
def test_unknown_metric_is_ignored():
    increment_counter("does_not_exist")
    record_histogram("does_not_exist", 1.0)


@pytest.mark.unit
def test_export_format():
    assert b"synthgen_workflows_active" in export_metrics()
    assert get_metrics_content_type().startswith("text/plain")


@pytest.mark.unit
def test_set_gauge():
    set_gauge("workflows_active", 0)
    assert get_metrics_registry().get_sample_value("synthgen_workflows_active") == 0.0


@pytest.mark.unit
def test_import_leaves_root_logger_alone():
    root = logging.getLogger()
    sentinel = logging.NullHandler()
    root.addHandler(sentinel)
    try:
        importlib.reload(logging_module)
        assert sentinel in root.handlers
    finally:
        root.removeHandler(sentinel)


@pytest.mark.unit
def test_project_markers_registered(pytestconfig):
    registered = {line.split(":", 1)[0] for line in pytestconfig.getini("markers")}
    assert {"unit", "integration", "slow"} <= registered
