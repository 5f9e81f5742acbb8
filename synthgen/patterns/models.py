"""
Data models for synthetic metric streams.

Defines the metric/pattern vocabularies, the generation request accepted by
:class:`~synthgen.patterns.generator.TimeSeriesPatternGenerator`, and the
emitted stream structure.
"""

from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MetricType(str, Enum):
    """Kinds of system metric the generator can simulate."""

    CPU = "cpu"
    MEMORY = "memory"
    DISK = "disk"
    NETWORK = "network"
    CUSTOM = "custom"


class PatternType(str, Enum):
    """Statistical shapes a generated stream can follow."""

    STABLE = "stable"
    SPIKE = "spike"
    DEGRADATION = "degradation"
    LEAK = "leak"
    FRAGMENTATION = "fragmentation"
    CONGESTION = "congestion"


# Sampling interval per metric type: fast-changing signals sample more often.
SAMPLING_INTERVAL_MS: Dict[MetricType, int] = {
    MetricType.CPU: 1000,
    MetricType.MEMORY: 1000,
    MetricType.DISK: 5000,
    MetricType.NETWORK: 500,
    MetricType.CUSTOM: 1000,
}

METRIC_UNITS: Dict[MetricType, str] = {
    MetricType.CPU: "percent",
    MetricType.MEMORY: "MB",
    MetricType.DISK: "percent",
    MetricType.NETWORK: "bytes/sec",
    MetricType.CUSTOM: "count",
}

DEFAULT_BASE_VALUES: Dict[MetricType, float] = {
    MetricType.CPU: 50.0,
    MetricType.MEMORY: 1024.0,
    MetricType.DISK: 70.0,
    MetricType.NETWORK: 1_000_000.0,
    MetricType.CUSTOM: 100.0,
}

DEFAULT_VARIANCE = 0.1


class GenerationRequest(BaseModel):
    """
    Request for one synthetic metric stream.

    Attributes:
        metric_type: Metric being simulated (drives interval, unit and tags)
        pattern: Statistical shape of the stream
        duration_seconds: Time span covered by the stream
        base_value: Baseline value (defaults per metric type)
        variance: Jitter as a fraction of base_value, not an absolute unit
        pattern_params: Optional pattern tuning (spike_frequency, leak_rate, ...)

    Example:
        >>> request = GenerationRequest(
        ...     metric_type="memory",
        ...     pattern="leak",
        ...     duration_seconds=300,
        ...     pattern_params={"leak_rate": 0.003},
        ... )
    """

    metric_type: MetricType = Field(..., description="Metric type")
    pattern: PatternType = Field(..., description="Pattern name")
    duration_seconds: float = Field(..., description="Stream duration", gt=0)
    base_value: Optional[float] = Field(None, description="Baseline value", ge=0)
    variance: float = Field(DEFAULT_VARIANCE, description="Variance fraction", ge=0)
    pattern_params: Dict[str, float] = Field(
        default_factory=dict, description="Pattern-specific parameters"
    )

    model_config = ConfigDict(allow_inf_nan=False)

    @model_validator(mode="after")
    def _apply_type_defaults(self) -> "GenerationRequest":
        if self.base_value is None:
            self.base_value = DEFAULT_BASE_VALUES[self.metric_type]
        return self

    @property
    def resolved_base_value(self) -> float:
        """Base value with the per-type default applied."""
        if self.base_value is None:
            return DEFAULT_BASE_VALUES[self.metric_type]
        return float(self.base_value)


class MetricPoint(BaseModel):
    """One sample of a metric stream."""

    timestamp: datetime
    value: float = Field(..., ge=0)
    tags: Dict[str, str] = Field(default_factory=dict)
    generated: bool = True

    model_config = ConfigDict(allow_inf_nan=False)


class StreamMetadata(BaseModel):
    """Summary statistics derived from a finished stream."""

    total_points: int = Field(0, ge=0)
    avg_value: float = 0.0
    min_value: float = 0.0
    max_value: float = 0.0
    pattern: PatternType


class MetricStream(BaseModel):
    """
    Ordered sequence of metric points plus derived metadata.

    Points are validated to be in non-decreasing timestamp order.
    """

    name: str
    type: MetricType
    unit: str
    points: List[MetricPoint] = Field(default_factory=list)
    metadata: StreamMetadata

    @model_validator(mode="after")
    def _check_ordering(self) -> "MetricStream":
        for previous, current in zip(self.points, self.points[1:]):
            if current.timestamp < previous.timestamp:
                raise ValueError("metric points must be in non-decreasing timestamp order")
        return self

    @property
    def values(self) -> List[float]:
        """Point values in stream order."""
        return [point.value for point in self.points]


def summarize_values(values: List[float], pattern: PatternType) -> StreamMetadata:
    """Compute count/avg/min/max for a value sequence."""
    if not values:
        return StreamMetadata(pattern=pattern)
    return StreamMetadata(
        total_points=len(values),
        # Divide before summing so streams near float max cannot overflow.
        avg_value=math.fsum(value / len(values) for value in values),
        min_value=min(values),
        max_value=max(values),
        pattern=pattern,
    )


def as_stream(payload: Any) -> Optional[MetricStream]:
    """Coerce a step payload item into a MetricStream, or None if it is not one."""
    if isinstance(payload, MetricStream):
        return payload
    if isinstance(payload, dict) and {"points", "metadata", "type"} <= payload.keys():
        return MetricStream.model_validate(payload)
    return None


__all__ = [
    "MetricType",
    "PatternType",
    "SAMPLING_INTERVAL_MS",
    "METRIC_UNITS",
    "DEFAULT_BASE_VALUES",
    "DEFAULT_VARIANCE",
    "GenerationRequest",
    "MetricPoint",
    "StreamMetadata",
    "MetricStream",
    "summarize_values",
    "as_stream",
]
