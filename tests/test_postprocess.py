"""
Tests for pattern post-processing passes and scenario presets.
"""

import pytest

from synthgen.patterns import PatternType, get_scenario, SCENARIO_PRESETS
from synthgen.patterns.postprocess import (
    apply_post_processing,
    enforce_floor,
    smooth_spike_tail,
    validate_leak_pattern,
)
from synthgen.patterns.shapes import PatternState, init_pattern_state


@pytest.mark.unit
def test_smooth_spike_tail_replaces_isolated_outlier():
    values = [10.0, 100.0, 10.0, 11.0]
    smooth_spike_tail(values)
    assert values == [10.0, 10.0, 10.0, 11.0]


@pytest.mark.unit
def test_smooth_spike_tail_keeps_spike_followed_by_decay():
    values = [30.0, 90.0, 78.0, 66.0, 54.0]
    smooth_spike_tail(values)
    assert values == [30.0, 90.0, 78.0, 66.0, 54.0]



@pytest.mark.unit
def test_smooth_spike_tail_keeps_scheduled_spike_with_short_decay():
    values = [30.0, 30.0, 90.0, 30.0, 30.0]
    smooth_spike_tail(values, spike_frequency=2)
    assert values == [30.0, 30.0, 90.0, 30.0, 30.0]

    unscheduled = [30.0, 30.0, 90.0, 30.0, 30.0]
    smooth_spike_tail(unscheduled)
    assert unscheduled[2] == 30.0


@pytest.mark.unit
def test_enforce_floor():
    values = [1.0, 5.0, 0.0]
    enforce_floor(values, 2.0)
    assert values == [2.0, 5.0, 2.0]


@pytest.mark.unit
def test_leak_validator_forces_gc_after_gap():
    values = [100.0] * 250
    validate_leak_pattern(values, retention=0.7)

    assert values[100] == 100.0
    assert values[101] == pytest.approx(70.0)
    assert values[202] == pytest.approx(49.0)


@pytest.mark.unit
def test_leak_validator_leaves_regular_gc_alone():
    values = [float(100 + i) for i in range(99)] + [50.0] + [float(100 + i) for i in range(99)]
    original = list(values)
    validate_leak_pattern(values, retention=0.7)
    assert values == original


@pytest.mark.unit
def test_apply_post_processing_dispatch():
    state = init_pattern_state(PatternType.DEGRADATION, 40.0, {"floor_fraction": 0.25})
    values = [40.0, 5.0]
    apply_post_processing(values, PatternType.DEGRADATION, 40.0, state)
    assert values == [40.0, 10.0]

    stable = [10.0, 100.0, 10.0]
    apply_post_processing(stable, PatternType.STABLE, 10.0, PatternState())
    assert stable == [10.0, 100.0, 10.0]


@pytest.mark.unit
def test_scenario_presets():
    assert set(SCENARIO_PRESETS) == {"performance_degradation", "stable_baseline", "stress_test"}

    requests = get_scenario("stress_test")
    assert [r.pattern for r in requests] == [
        PatternType.SPIKE,
        PatternType.FRAGMENTATION,
        PatternType.CONGESTION,
    ]
    assert all(r.duration_seconds == 180 for r in requests)

    shortened = get_scenario("performance_degradation", duration_seconds=30)
    assert all(r.duration_seconds == 30 for r in shortened)


@pytest.mark.unit
def test_unknown_scenario_lists_presets():
    with pytest.raises(KeyError, match="stable_baseline"):
        get_scenario("apocalypse")
