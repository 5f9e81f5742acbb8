"""
Pattern-specific passes applied after a full point sequence is generated.

The passes operate on the raw value list before points are materialised, so
each one is a plain ``list[float] -> None`` mutation.
"""

from __future__ import annotations

from typing import List, Optional

from synthgen.patterns.models import PatternType
from synthgen.patterns.shapes import PatternState

# A drop below this fraction of the previous value counts as a GC event.
GC_DROP_RATIO = 0.8
MAX_POINTS_WITHOUT_GC = 100


def smooth_spike_tail(values: List[float], spike_frequency: Optional[int] = None) -> None:
    """
    Replace isolated outliers that disagree with both neighbours by >50%.

    Indices on the spike schedule (multiples of ``spike_frequency``) are left
    alone so a spike with a short decay is not averaged away.
    """
    for i in range(1, len(values) - 1):
        if spike_frequency and i % spike_frequency == 0:
            continue
        prev, curr, nxt = values[i - 1], values[i], values[i + 1]
        if abs(curr - prev) > prev * 0.5 and abs(curr - nxt) > nxt * 0.5:
            values[i] = (prev + nxt) / 2


def enforce_floor(values: List[float], floor: float) -> None:
    """Raise every value below ``floor`` up to it."""
    for i, value in enumerate(values):
        if value < floor:
            values[i] = floor


def validate_leak_pattern(
    values: List[float],
    retention: float,
    max_gap: int = MAX_POINTS_WITHOUT_GC,
) -> None:
    """
    Keep the leak-then-reset signature intact.

    Scans for GC drops (a fall below 80% of the previous value); if more than
    ``max_gap`` consecutive points pass without one, a synthetic GC is forced
    at ``retention`` of the last GC value.
    """
    last_gc_index = 0
    for i in range(1, len(values)):
        if values[i] < values[i - 1] * GC_DROP_RATIO:
            last_gc_index = i
        elif i - last_gc_index > max_gap:
            values[i] = values[last_gc_index] * retention
            last_gc_index = i


def apply_post_processing(
    values: List[float],
    pattern: PatternType,
    base_value: float,
    state: PatternState,
) -> None:
    """Dispatch the post-processing pass for ``pattern`` (no-op for others)."""
    if pattern is PatternType.SPIKE:
        smooth_spike_tail(values, state.spike_frequency)
    elif pattern is PatternType.DEGRADATION:
        enforce_floor(values, base_value * state.floor_fraction)
    elif pattern is PatternType.LEAK:
        validate_leak_pattern(values, state.gc_retention, max(MAX_POINTS_WITHOUT_GC, state.gc_interval))


__all__ = [
    "smooth_spike_tail",
    "enforce_floor",
    "validate_leak_pattern",
    "apply_post_processing",
]
