"""
Global pytest configuration for synthgen

This file provides shared fixtures and enforces Python version requirements.
"""

from __future__ import annotations

import random
import sys

import pytest

from synthgen.config import ExecutorConfig, GeneratorConfig
from synthgen.executor import ScenarioExecutor, StepHandlerRegistry, create_default_registry
from synthgen.patterns import LogGenerator, TimeSeriesPatternGenerator

_MIN_PY_VERSION = (3, 11)


def _verify_python_version() -> str:
    """Return the interpreter version string or exit if <3.11."""
    version_info = sys.version_info
    version_str = ".".join(map(str, version_info[:3]))
    if version_info < _MIN_PY_VERSION:
        pytest.exit(
            f"ERROR: pytest must run on Python 3.11+ (detected {version_str}).",
            returncode=1,
        )
    return version_str


def pytest_report_header(config: pytest.Config) -> str:
    version_str = _verify_python_version()
    return f"Python interpreter verified for pytest: {version_str}"


_MARKERS = {
    "unit": "Unit tests that should execute quickly.",
    "integration": "Integration tests hitting multiple components.",
    "slow": "Slow or high-cost tests.",
}


def pytest_configure(config: pytest.Config) -> None:
    """Register project markers before collection to prevent unknown marker warnings."""
    for name, description in _MARKERS.items():
        config.addinivalue_line("markers", f"{name}: {description}")


@pytest.fixture
def generator() -> TimeSeriesPatternGenerator:
    """Pattern generator with a fixed seed."""
    return TimeSeriesPatternGenerator(rng=random.Random(1234))


@pytest.fixture
def log_generator() -> LogGenerator:
    """Log generator with a fixed seed."""
    return LogGenerator(rng=random.Random(4321))


@pytest.fixture
def fast_config() -> ExecutorConfig:
    """Executor config with no retry backoff."""
    return ExecutorConfig(retry_base_delay_seconds=0.0, default_timeout_ms=2000, default_max_retries=0)


@pytest.fixture
def registry(generator: TimeSeriesPatternGenerator) -> StepHandlerRegistry:
    """Fresh registry of built-in handlers backed by the seeded generator."""
    return create_default_registry(generator)


@pytest.fixture
def executor(registry: StepHandlerRegistry, fast_config: ExecutorConfig) -> ScenarioExecutor:
    return ScenarioExecutor(registry=registry, config=fast_config)


@pytest.fixture
def generator_config() -> GeneratorConfig:
    return GeneratorConfig(seed=99)
