"""
Predefined multi-stream metric scenarios.

Each preset returns the generation requests for a typical monitoring situation
so that workflows can ask for ``{"scenario": "stress_test"}`` instead of
spelling out every stream.
"""

from __future__ import annotations

from typing import Callable, Dict, List

from synthgen.patterns.models import GenerationRequest, MetricType, PatternType


def performance_degradation(duration_seconds: float = 300) -> List[GenerationRequest]:
    """CPU spikes, a memory leak and slowly degrading disk throughput."""
    return [
        GenerationRequest(
            metric_type=MetricType.CPU,
            pattern=PatternType.SPIKE,
            duration_seconds=duration_seconds,
            base_value=30,
            variance=0.2,
            pattern_params={"spike_intensity": 3},
        ),
        GenerationRequest(
            metric_type=MetricType.MEMORY,
            pattern=PatternType.LEAK,
            duration_seconds=duration_seconds,
            base_value=512,
            variance=0.1,
            pattern_params={"leak_rate": 0.003},
        ),
        GenerationRequest(
            metric_type=MetricType.DISK,
            pattern=PatternType.DEGRADATION,
            duration_seconds=duration_seconds,
            base_value=20,
            variance=0.15,
            pattern_params={"degradation_rate": 0.001},
        ),
    ]


def stable_baseline(duration_seconds: float = 300) -> List[GenerationRequest]:
    """Quiet system: every stream stable around its base."""
    return [
        GenerationRequest(
            metric_type=MetricType.CPU,
            pattern=PatternType.STABLE,
            duration_seconds=duration_seconds,
            base_value=25,
            variance=0.1,
        ),
        GenerationRequest(
            metric_type=MetricType.MEMORY,
            pattern=PatternType.STABLE,
            duration_seconds=duration_seconds,
            base_value=256,
            variance=0.05,
        ),
        GenerationRequest(
            metric_type=MetricType.NETWORK,
            pattern=PatternType.STABLE,
            duration_seconds=duration_seconds,
            base_value=500_000,
            variance=0.2,
        ),
    ]


def stress_test(duration_seconds: float = 180) -> List[GenerationRequest]:
    """High load: mild CPU spikes, fragmented memory, congested network."""
    return [
        GenerationRequest(
            metric_type=MetricType.CPU,
            pattern=PatternType.SPIKE,
            duration_seconds=duration_seconds,
            base_value=80,
            variance=0.15,
            pattern_params={"spike_intensity": 1.2},
        ),
        GenerationRequest(
            metric_type=MetricType.MEMORY,
            pattern=PatternType.FRAGMENTATION,
            duration_seconds=duration_seconds,
            base_value=2048,
            variance=0.3,
        ),
        GenerationRequest(
            metric_type=MetricType.NETWORK,
            pattern=PatternType.CONGESTION,
            duration_seconds=duration_seconds,
            base_value=2_000_000,
            variance=0.4,
        ),
    ]


SCENARIO_PRESETS: Dict[str, Callable[[float], List[GenerationRequest]]] = {
    "performance_degradation": performance_degradation,
    "stable_baseline": stable_baseline,
    "stress_test": stress_test,
}


def get_scenario(name: str, duration_seconds: float | None = None) -> List[GenerationRequest]:
    """
    Look up a preset by name.

    Raises:
        KeyError: If no preset has that name
    """
    try:
        factory = SCENARIO_PRESETS[name]
    except KeyError:
        raise KeyError(
            f"Unknown metric scenario: {name}. Available: {', '.join(sorted(SCENARIO_PRESETS))}"
        ) from None
    return factory() if duration_seconds is None else factory(duration_seconds)


__all__ = [
    "performance_degradation",
    "stable_baseline",
    "stress_test",
    "SCENARIO_PRESETS",
    "get_scenario",
]
