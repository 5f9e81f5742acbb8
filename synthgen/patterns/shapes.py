"""
Single-point value functions for each statistical pattern.

Every function maps ``(base_value, variance, state, index, rng) -> value`` and
may mutate ``state``. The generation loop owns one :class:`PatternState` per
stream and threads it through successive calls; nothing here keeps state
between streams.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import ValidationError

from synthgen.config import GeneratorConfig
from synthgen.patterns.exceptions import PatternGenerationError
from synthgen.patterns.models import PatternType


DEFAULT_SPIKE_FREQUENCY = 50
# Streams with an explicit spike intensity spike more often.
DEFAULT_SPIKE_FREQUENCY_WITH_INTENSITY = 30
DEFAULT_SPIKE_INTENSITY = 3.0
DEFAULT_DEGRADATION_RATE = 0.001
DEGRADATION_FLOOR_FRACTION = 0.1
DEFAULT_LEAK_RATE = 0.002
GC_RETENTION = 0.7


@dataclass
class PatternState:
    """Mutable per-stream state threaded through the pattern functions."""

    spike_frequency: int = DEFAULT_SPIKE_FREQUENCY
    spike_intensity: float = DEFAULT_SPIKE_INTENSITY
    spike_decay_points: int = 5
    in_spike: bool = False
    spike_countdown: int = 0

    degradation_rate: float = DEFAULT_DEGRADATION_RATE
    floor_fraction: float = DEGRADATION_FLOOR_FRACTION

    leak_rate: float = DEFAULT_LEAK_RATE
    gc_interval: int = 100
    gc_retention: float = GC_RETENTION
    last_gc: float = 0.0

    fragmentation_cycle: int = 30
    fragmentation_phase: int = 0

    congestion_cycle: int = 60
    congestion_probability: float = 0.05
    congestion_length: int = 10
    congestion_event: int = 0


# pattern_params name -> GeneratorConfig field carrying the same bound
_CONFIG_PARAMS: Dict[str, str] = {
    "spike_decay_points": "spike_decay_points",
    "gc_interval": "leak_gc_interval",
    "fragmentation_cycle": "fragmentation_cycle",
    "congestion_cycle": "congestion_cycle",
    "congestion_probability": "congestion_probability",
    "congestion_length": "congestion_length",
}


def _param(params: Mapping[str, Any], name: str, default: float) -> float:
    value = params.get(name)
    return default if value is None else float(value)


def _resolve_config(params: Mapping[str, Any], config: GeneratorConfig) -> GeneratorConfig:
    """Overlay per-request cycle parameters on ``config``, enforcing its bounds."""
    overrides = {
        field: params[name]
        for name, field in _CONFIG_PARAMS.items()
        if params.get(name) is not None
    }
    if not overrides:
        return config
    try:
        return GeneratorConfig.model_validate({**config.model_dump(), **overrides})
    except ValidationError as exc:
        raise PatternGenerationError(
            f"Invalid pattern parameters: {exc}", context=dict(params)
        ) from exc


def init_pattern_state(
    pattern: PatternType,
    base_value: float,
    params: Optional[Mapping[str, Any]] = None,
    config: Optional[GeneratorConfig] = None,
) -> PatternState:
    """
    Build the initial state for one stream.

    Args:
        pattern: Pattern being generated
        base_value: Stream base value (seeds the leak floor)
        params: Caller-supplied pattern parameters
        config: Generator configuration supplying cycle lengths

    Returns:
        Fresh PatternState

    Raises:
        PatternGenerationError: If a cycle, interval or frequency parameter is
            out of range
    """
    params = params or {}
    config = _resolve_config(params, config or GeneratorConfig())

    state = PatternState(
        spike_decay_points=config.spike_decay_points,
        gc_interval=config.leak_gc_interval,
        fragmentation_cycle=config.fragmentation_cycle,
        congestion_cycle=config.congestion_cycle,
        congestion_probability=config.congestion_probability,
        congestion_length=config.congestion_length,
    )

    if pattern is PatternType.SPIKE:
        frequency_default = (
            DEFAULT_SPIKE_FREQUENCY_WITH_INTENSITY
            if "spike_intensity" in params
            else DEFAULT_SPIKE_FREQUENCY
        )
        frequency = int(_param(params, "spike_frequency", frequency_default))
        if frequency < 1:
            raise PatternGenerationError(
                f"spike_frequency must be at least 1, got {params.get('spike_frequency')}",
                context=dict(params),
            )
        state.spike_frequency = frequency
        state.spike_intensity = _param(params, "spike_intensity", DEFAULT_SPIKE_INTENSITY)
    elif pattern is PatternType.DEGRADATION:
        state.degradation_rate = _param(params, "degradation_rate", DEFAULT_DEGRADATION_RATE)
        state.floor_fraction = _param(params, "floor_fraction", DEGRADATION_FLOOR_FRACTION)
    elif pattern is PatternType.LEAK:
        state.leak_rate = _param(
            params, "leak_rate", _param(params, "degradation_rate", DEFAULT_LEAK_RATE)
        )
        state.gc_retention = _param(params, "gc_retention", GC_RETENTION)
        state.last_gc = base_value

    return state


def stable_value(
    base: float, variance: float, state: PatternState, index: int, rng: random.Random
) -> float:
    """Small symmetric jitter around base: ``base * variance * U(-1, 1) * 0.1``."""
    fluctuation = base * variance * rng.uniform(-1.0, 1.0) * 0.1
    return max(0.0, base + fluctuation)


def spike_value(
    base: float, variance: float, state: PatternState, index: int, rng: random.Random
) -> float:
    """Periodic spikes that decay linearly back to base."""
    if index % state.spike_frequency == 0:
        # A new spike always restarts the decay countdown.
        state.in_spike = True
        state.spike_countdown = state.spike_decay_points
        return base * state.spike_intensity

    if state.in_spike and state.spike_countdown > 0:
        state.spike_countdown -= 1
        if state.spike_countdown == 0:
            state.in_spike = False
        remaining = state.spike_countdown / state.spike_decay_points
        return base * (1 + (state.spike_intensity - 1) * remaining)

    return stable_value(base, variance * 0.2, state, index, rng)


def degradation_value(
    base: float, variance: float, state: PatternState, index: int, rng: random.Random
) -> float:
    """Linear decline floored at a fraction of the starting base."""
    current_base = base * (1 - state.degradation_rate * index)
    return max(base * state.floor_fraction, stable_value(current_base, variance, state, index, rng))


def leak_value(
    base: float, variance: float, state: PatternState, index: int, rng: random.Random
) -> float:
    """Monotonic growth interrupted by a simulated GC every ``gc_interval`` points."""
    current_base = base * (1 + state.leak_rate * index)

    if (index + 1) % state.gc_interval == 0:
        state.last_gc = current_base * state.gc_retention
        return state.last_gc

    return max(state.last_gc, stable_value(current_base, variance, state, index, rng))


def fragmentation_value(
    base: float, variance: float, state: PatternState, index: int, rng: random.Random
) -> float:
    """Irregular cycles: ramp, rise-then-fall, or oscillation."""
    cycle = state.fragmentation_cycle
    if index % cycle == 0:
        state.fragmentation_phase = rng.randrange(3)

    progress = (index % cycle) / cycle

    if state.fragmentation_phase == 0:
        return base * (1 + progress * 0.5)
    if state.fragmentation_phase == 1:
        if progress < 0.2:
            return base * (1 + progress * 2)
        return base * (1.4 - progress)
    return base * (1 + math.sin(progress * 2 * math.pi * 4) * 0.3)


def congestion_value(
    base: float, variance: float, state: PatternState, index: int, rng: random.Random
) -> float:
    """Daily traffic envelope with occasional 2x-3x congestion surges."""
    progress = (index % state.congestion_cycle) / state.congestion_cycle
    traffic_factor = 1 + math.sin(progress * 2 * math.pi) * 0.6

    if state.congestion_event == 0 and rng.random() < state.congestion_probability:
        state.congestion_event = state.congestion_length

    multiplier = 1.0
    if state.congestion_event > 0:
        multiplier = 2 + rng.random()
        state.congestion_event -= 1

    return base * traffic_factor * multiplier


PatternFunction = Callable[[float, float, PatternState, int, random.Random], float]

PATTERN_FUNCTIONS: Dict[PatternType, PatternFunction] = {
    PatternType.STABLE: stable_value,
    PatternType.SPIKE: spike_value,
    PatternType.DEGRADATION: degradation_value,
    PatternType.LEAK: leak_value,
    PatternType.FRAGMENTATION: fragmentation_value,
    PatternType.CONGESTION: congestion_value,
}


__all__ = [
    "PatternState",
    "PatternFunction",
    "PATTERN_FUNCTIONS",
    "init_pattern_state",
    "stable_value",
    "spike_value",
    "degradation_value",
    "leak_value",
    "fragmentation_value",
    "congestion_value",
]
