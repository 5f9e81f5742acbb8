"""
Time-series pattern generator.

Produces synthetic metric streams (CPU, memory, disk, network) whose values
follow a named statistical pattern. A stream is assembled in three passes:

1. Sampling loop: one value per interval via the pattern's point function
2. Pattern post-processing (spike smoothing, floors, GC validation)
3. Point materialisation (timestamps, tags) and metadata derivation

Determinism:
    Pass ``seed`` or an explicit ``random.Random`` to get reproducible streams.
    Without either, values come from an unseeded source.
"""

from __future__ import annotations

import math
import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog
from pydantic import ValidationError

from synthgen.config import GeneratorConfig
from synthgen.observability import get_logger
from synthgen.observability.metrics import increment_counter, track_duration
from synthgen.patterns.exceptions import PatternGenerationError
from synthgen.patterns.models import (
    METRIC_UNITS,
    SAMPLING_INTERVAL_MS,
    GenerationRequest,
    MetricPoint,
    MetricStream,
    MetricType,
    PatternType,
    summarize_values,
)
from synthgen.patterns.postprocess import apply_post_processing
from synthgen.patterns.shapes import PATTERN_FUNCTIONS, PatternState, init_pattern_state


class TimeSeriesPatternGenerator:
    """
    Generate synthetic metric streams with configurable statistical shapes.

    Example:
        >>> generator = TimeSeriesPatternGenerator(seed=7)
        >>> stream = generator.generate_stream(
        ...     metric_type="cpu",
        ...     pattern="spike",
        ...     duration_seconds=120,
        ...     base_value=30,
        ...     variance=0.2,
        ...     pattern_params={"spike_intensity": 3},
        ... )
        >>> stream.metadata.max_value
        90.0
    """

    def __init__(
        self,
        config: Optional[GeneratorConfig] = None,
        rng: Optional[random.Random] = None,
        seed: Optional[int] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        """
        Initialize the generator.

        Args:
            config: Generator configuration (cycle lengths, default seed)
            rng: Random source; takes precedence over ``seed``
            seed: Seed for a private random source (falls back to config.seed)
            logger: Logger to use (defaults to the module logger)
        """
        self._config = config or GeneratorConfig()
        if rng is None:
            rng = random.Random(seed if seed is not None else self._config.seed)
        self._rng = rng
        self._logger = logger or get_logger(__name__)

    @property
    def config(self) -> GeneratorConfig:
        """Generator configuration in use."""
        return self._config

    def generate_stream(
        self,
        metric_type: MetricType | str,
        pattern: PatternType | str,
        duration_seconds: float,
        base_value: Optional[float] = None,
        variance: Optional[float] = None,
        pattern_params: Optional[Mapping[str, float]] = None,
        start_time: Optional[datetime] = None,
    ) -> MetricStream:
        """
        Generate one stream from loose arguments.

        Raises:
            PatternGenerationError: If the arguments do not form a valid request
        """
        payload: Dict[str, Any] = {
            "metric_type": metric_type,
            "pattern": pattern,
            "duration_seconds": duration_seconds,
            "base_value": base_value,
            "pattern_params": dict(pattern_params or {}),
        }
        if variance is not None:
            payload["variance"] = variance

        try:
            request = GenerationRequest(**payload)
        except ValidationError as exc:
            raise PatternGenerationError(
                f"Invalid generation request: {exc}", context=payload
            ) from exc

        return self.generate(request, start_time=start_time)

    def generate(
        self, request: GenerationRequest, start_time: Optional[datetime] = None
    ) -> MetricStream:
        """
        Generate one stream for a validated request.

        Args:
            request: Generation request
            start_time: Timestamp of the first point (defaults to now, UTC)

        Returns:
            MetricStream covering ``request.duration_seconds``
        """
        metric_type = request.metric_type
        pattern = request.pattern
        base_value = request.resolved_base_value
        interval_ms = SAMPLING_INTERVAL_MS[metric_type]
        start = start_time or datetime.now(timezone.utc)

        self._logger.info(
            "stream_generation_started",
            metric_type=metric_type.value,
            pattern=pattern.value,
            duration_seconds=request.duration_seconds,
        )

        with track_duration("stream_generation_seconds", labels={"pattern": pattern.value}):
            values, state = self._sample_values(request, base_value, interval_ms)
            apply_post_processing(values, pattern, base_value, state)
            for index, value in enumerate(values):
                fallback = values[index - 1] if index else base_value
                values[index] = self._guard_value(value, fallback, pattern, index)

            points = [
                MetricPoint(
                    timestamp=start + timedelta(milliseconds=index * interval_ms),
                    value=value,
                    tags=self._generate_tags(metric_type, pattern),
                    generated=True,
                )
                for index, value in enumerate(values)
            ]

        stream = MetricStream(
            name=f"{metric_type.value}_{pattern.value}",
            type=metric_type,
            unit=METRIC_UNITS[metric_type],
            points=points,
            metadata=summarize_values(values, pattern),
        )

        increment_counter(
            "streams_generated_total",
            labels={"metric_type": metric_type.value, "pattern": pattern.value},
        )
        increment_counter("points_generated_total", len(points), labels={"pattern": pattern.value})

        self._logger.info(
            "stream_generation_completed",
            metric_type=metric_type.value,
            pattern=pattern.value,
            total_points=stream.metadata.total_points,
            avg_value=round(stream.metadata.avg_value, 3),
        )
        return stream

    def generate_multiple_streams(
        self, requests: Iterable[GenerationRequest | Mapping[str, Any]]
    ) -> List[MetricStream]:
        """
        Generate several streams; an invalid request is logged and skipped.

        Args:
            requests: GenerationRequest instances or equivalent mappings

        Returns:
            Streams for every request that could be generated, in order
        """
        streams: List[MetricStream] = []
        for raw in requests:
            try:
                request = (
                    raw if isinstance(raw, GenerationRequest) else GenerationRequest(**raw)
                )
                streams.append(self.generate(request))
            except (ValidationError, PatternGenerationError) as exc:
                self._logger.warning(
                    "stream_generation_skipped",
                    request=str(raw),
                    error=str(exc),
                )
        return streams

    def _sample_values(
        self, request: GenerationRequest, base_value: float, interval_ms: int
    ) -> tuple[List[float], PatternState]:
        """Run the sampling loop, returning raw values and the final pattern state."""
        pattern_fn = PATTERN_FUNCTIONS.get(request.pattern)
        if pattern_fn is None:
            raise PatternGenerationError(
                f"No point function for pattern: {request.pattern}",
                context={"pattern": request.pattern},
            )

        state = init_pattern_state(
            request.pattern, base_value, request.pattern_params, self._config
        )
        total_ms = round(request.duration_seconds * 1000)
        point_count = math.ceil(total_ms / interval_ms)

        values: List[float] = []
        last_valid = base_value
        for index in range(point_count):
            raw = pattern_fn(base_value, request.variance, state, index, self._rng)
            value = self._guard_value(raw, last_valid, request.pattern, index)
            values.append(value)
            last_valid = value

        return values, state

    def _guard_value(
        self, value: float, fallback: float, pattern: PatternType, index: int
    ) -> float:
        """Clamp to >= 0; a non-finite value is a defect and is replaced."""
        if not math.isfinite(value):
            self._logger.error(
                "non_finite_value_clamped",
                pattern=pattern.value,
                point_index=index,
                value=str(value),
            )
            increment_counter("values_clamped_total", labels={"pattern": pattern.value})
            value = fallback if math.isfinite(fallback) else 0.0
        return max(0.0, value)

    def _generate_tags(self, metric_type: MetricType, pattern: PatternType) -> Dict[str, str]:
        tags = {
            "source": "synthgen",
            "type": metric_type.value,
            "pattern": pattern.value,
        }
        rng = self._rng
        if metric_type is MetricType.CPU:
            tags["core"] = f"core-{rng.randrange(8)}"
        elif metric_type is MetricType.MEMORY:
            tags["pool"] = "heap" if rng.random() < 0.5 else "non-heap"
        elif metric_type is MetricType.DISK:
            tags["mount"] = "/" if rng.random() < 0.7 else "/var"
        elif metric_type is MetricType.NETWORK:
            tags["interface"] = "eth0" if rng.random() < 0.8 else "eth1"
            tags["direction"] = "in" if rng.random() < 0.5 else "out"
        return tags


__all__ = ["TimeSeriesPatternGenerator"]
