"""
Built-in step handlers.

``generation`` produces metric streams (and log files when asked) with the
pattern and log generators; the other kinds consume those payloads from
``context.step_results``. None of them perform network I/O.
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TypeVar

from synthgen.executor.exceptions import StepExecutionError, StepValidationError
from synthgen.executor.handlers import BaseStepHandler, StepHandlerRegistry
from synthgen.executor.models import ExecutionContext, ExecutionStep, StepKind
from synthgen.observability import get_logger
from synthgen.patterns.exceptions import PatternGenerationError
from synthgen.patterns.generator import TimeSeriesPatternGenerator
from synthgen.patterns.logs import (
    LogFile,
    LogGenerationRequest,
    LogGenerator,
    LogLevel,
    as_log_file,
)
from synthgen.patterns.models import GenerationRequest, MetricStream, as_stream
from synthgen.patterns.scenarios import get_scenario

logger = get_logger(__name__)

DEFAULT_GENERATION_SECONDS = 60
DEFAULT_VALIDATION_RULES = ("non_negative", "finite", "ordered_timestamps")
DROP_RATIO = 0.8
DEFAULT_LOG_ERROR_THRESHOLD = 0.2

T = TypeVar("T")


def _walk(payload: Any, coerce: Callable[[Any], Optional[T]], keys: Sequence[str]) -> Iterator[T]:
    item = coerce(payload)
    if item is not None:
        yield item
        return
    if isinstance(payload, dict):
        for key in keys:
            if key in payload:
                yield from _walk(payload[key], coerce, keys)
    elif isinstance(payload, (list, tuple)):
        for element in payload:
            yield from _walk(element, coerce, keys)


def iter_streams(payload: Any) -> Iterator[MetricStream]:
    """Yield every MetricStream found in a step result (nested dicts and lists)."""
    yield from _walk(payload, as_stream, ("streams", "data"))


def iter_log_files(payload: Any) -> Iterator[LogFile]:
    """Yield every LogFile found in a step result (nested dicts and lists)."""
    yield from _walk(payload, as_log_file, ("log_files", "data"))


def _segment_mean(values: List[float], fraction: float, tail: bool) -> float:
    size = max(1, int(len(values) * fraction))
    segment = values[-size:] if tail else values[:size]
    return math.fsum(segment) / len(segment)


class GenerationStepHandler(BaseStepHandler):
    """
    Generate metric streams and log files.

    Parameters:
        metrics: List of GenerationRequest-shaped mappings
        scenario: Name of a preset (used when ``metrics`` is absent)
        duration_seconds: Duration for the preset or the default stream
        logs: LogGenerationRequest-shaped mapping, or a list of them

    With none of ``metrics``, ``scenario`` or ``logs``, one stable CPU stream
    is produced. Log requests without a ``scenario_id`` take the workflow id.
    """

    kind = StepKind.GENERATION.value

    def __init__(
        self,
        generator: Optional[TimeSeriesPatternGenerator] = None,
        log_generator: Optional[LogGenerator] = None,
    ):
        self._generator = generator or TimeSeriesPatternGenerator()
        self._log_generator = log_generator or LogGenerator()

    def _requests(self, step: ExecutionStep) -> List[GenerationRequest]:
        params = step.parameters
        duration = params.get("duration_seconds")
        if params.get("metrics"):
            return [
                item if isinstance(item, GenerationRequest) else GenerationRequest(**item)
                for item in params["metrics"]
            ]
        if params.get("scenario"):
            try:
                return get_scenario(params["scenario"], duration)
            except KeyError as exc:
                raise StepExecutionError(str(exc.args[0]), step_id=step.id) from exc
        if params.get("logs"):
            return []
        return [
            GenerationRequest(
                metric_type="cpu",
                pattern="stable",
                duration_seconds=duration or DEFAULT_GENERATION_SECONDS,
            )
        ]

    def _log_requests(
        self, step: ExecutionStep, context: ExecutionContext
    ) -> List[LogGenerationRequest]:
        raw = step.parameters.get("logs")
        if not raw:
            return []
        items = raw if isinstance(raw, (list, tuple)) else [raw]
        requests = []
        for item in items:
            request = (
                item if isinstance(item, LogGenerationRequest) else LogGenerationRequest(**item)
            )
            if request.scenario_id is None:
                request = request.model_copy(update={"scenario_id": context.workflow_id})
            requests.append(request)
        return requests

    async def execute(self, step: ExecutionStep, context: ExecutionContext) -> Dict[str, Any]:
        await self.simulate_latency(step)

        streams = []
        for request in self._requests(step):
            try:
                streams.append(self._generator.generate(request))
            except PatternGenerationError as exc:
                raise StepExecutionError(str(exc), step_id=step.id) from exc

        log_files: List[LogFile] = []
        for log_request in self._log_requests(step, context):
            log_files.extend(self._log_generator.generate(log_request).log_files)
        log_entries = sum(log_file.metadata.line_count for log_file in log_files)

        total_points = sum(stream.metadata.total_points for stream in streams)
        context.global_state["generated_points"] = (
            context.global_state.get("generated_points", 0) + total_points
        )
        if log_files:
            context.global_state["generated_log_entries"] = (
                context.global_state.get("generated_log_entries", 0) + log_entries
            )
        logger.debug(
            "generation_step_completed",
            step_id=step.id,
            stream_count=len(streams),
            total_points=total_points,
            log_entries=log_entries,
        )
        return {
            "streams": streams,
            "stream_count": len(streams),
            "total_points": total_points,
            "log_files": log_files,
            "log_entries": log_entries,
            "execution_id": context.execution_id,
            "step_id": step.id,
        }

    async def rollback(self, step: ExecutionStep, context: ExecutionContext) -> None:
        result = context.step_results.get(step.id) or {}
        state = context.global_state
        generated = state.get("generated_points", 0)
        state["generated_points"] = max(0, generated - result.get("total_points", 0))
        if result.get("log_entries"):
            entries = state.get("generated_log_entries", 0)
            state["generated_log_entries"] = max(0, entries - result["log_entries"])


class AnalysisStepHandler(BaseStepHandler):
    """
    Summarise the streams and log files produced by this step's dependencies.

    Parameters:
        spike_factor: A point above ``spike_factor * avg`` counts as a spike (default 2.0)
        trend_tolerance: Trend ratios outside ``1 +/- tolerance`` are anomalous (default 0.25)
        log_error_threshold: A log file whose ERROR/FATAL share exceeds this is
            anomalous (default 0.2); reported as ``logs:<source>``
    """

    kind = StepKind.ANALYSIS.value

    async def execute(self, step: ExecutionStep, context: ExecutionContext) -> Dict[str, Any]:
        await self.simulate_latency(step)
        spike_factor = float(step.parameters.get("spike_factor", 2.0))
        tolerance = float(step.parameters.get("trend_tolerance", 0.25))
        log_threshold = float(
            step.parameters.get("log_error_threshold", DEFAULT_LOG_ERROR_THRESHOLD)
        )

        summaries = []
        log_summaries = []
        anomalies = []
        for payload in context.dependency_results(step).values():
            for stream in iter_streams(payload):
                summary = self._summarize(stream, spike_factor)
                summaries.append(summary)
                trend = summary["trend_ratio"]
                if summary["spike_count"] or summary["drop_count"] or abs(trend - 1) > tolerance:
                    anomalies.append(stream.name)
            for log_file in iter_log_files(payload):
                log_summary = self._summarize_log(log_file)
                log_summaries.append(log_summary)
                if log_summary["error_ratio"] > log_threshold:
                    anomalies.append(f"logs:{log_file.source}")

        return {
            "analyzed_streams": len(summaries),
            "analyzed_points": sum(s["total_points"] for s in summaries),
            "streams": summaries,
            "analyzed_log_files": len(log_summaries),
            "logs": log_summaries,
            "anomalies": anomalies,
        }

    @staticmethod
    def _summarize_log(log_file: LogFile) -> Dict[str, Any]:
        meta = log_file.metadata
        fatal = sum(1 for entry in log_file.entries if entry.level is LogLevel.FATAL)
        return {
            "source": log_file.source,
            "entries": meta.line_count,
            "error_count": meta.error_count,
            "fatal_count": fatal,
            "warning_count": meta.warning_count,
            "injected_count": sum(1 for entry in log_file.entries if entry.injected),
            "error_ratio": meta.error_count / meta.line_count if meta.line_count else 0.0,
        }

    @staticmethod
    def _summarize(stream: MetricStream, spike_factor: float) -> Dict[str, Any]:
        values = stream.values
        meta = stream.metadata
        if not values:
            return {
                "name": stream.name,
                "total_points": 0,
                "avg_value": 0.0,
                "min_value": 0.0,
                "max_value": 0.0,
                "trend_ratio": 1.0,
                "spike_count": 0,
                "drop_count": 0,
            }

        head = _segment_mean(values, 0.1, tail=False)
        tail = _segment_mean(values, 0.1, tail=True)
        threshold = meta.avg_value * spike_factor
        return {
            "name": stream.name,
            "total_points": meta.total_points,
            "avg_value": meta.avg_value,
            "min_value": meta.min_value,
            "max_value": meta.max_value,
            "trend_ratio": tail / head if head > 0 else 1.0,
            "spike_count": sum(1 for v in values if v > threshold),
            "drop_count": sum(
                1 for prev, curr in zip(values, values[1:]) if curr < prev * DROP_RATIO
            ),
        }


class ValidationStepHandler(BaseStepHandler):
    """
    Check every stream in the current results against data-quality rules.

    Log files are checked against ``ordered_timestamps`` only.

    Parameters:
        rules: Rule names; defaults to non_negative, finite, ordered_timestamps
        fail_on_issues: Raise StepValidationError when any issue is found
    """

    kind = StepKind.VALIDATION.value

    async def execute(self, step: ExecutionStep, context: ExecutionContext) -> Dict[str, Any]:
        await self.simulate_latency(step)
        rules = list(step.parameters.get("rules") or DEFAULT_VALIDATION_RULES)

        issues: List[str] = []
        for rule in rules:
            if rule not in DEFAULT_VALIDATION_RULES:
                issues.append(f"unknown rule: {rule}")

        validated = 0
        validated_logs = 0
        for source_id, payload in list(context.step_results.items()):
            for stream in iter_streams(payload):
                validated += 1
                issues.extend(self._check(stream, rules, source_id))
            for log_file in iter_log_files(payload):
                validated_logs += 1
                entries = log_file.entries
                if "ordered_timestamps" in rules and any(
                    b.timestamp < a.timestamp for a, b in zip(entries, entries[1:])
                ):
                    issues.append(f"{source_id}/{log_file.source}: log entries out of order")

        if issues and step.parameters.get("fail_on_issues"):
            raise StepValidationError(step.id, issues)

        return {
            "validation_passed": not issues,
            "validated_streams": validated,
            "validated_log_files": validated_logs,
            "validation_rules": rules,
            "issues": issues,
        }

    @staticmethod
    def _check(stream: MetricStream, rules: List[str], source_id: str) -> List[str]:
        issues = []
        label = f"{source_id}/{stream.name}"
        if "non_negative" in rules:
            negatives = sum(1 for p in stream.points if p.value < 0)
            if negatives:
                issues.append(f"{label}: {negatives} negative value(s)")
        if "finite" in rules:
            non_finite = sum(1 for p in stream.points if not math.isfinite(p.value))
            if non_finite:
                issues.append(f"{label}: {non_finite} non-finite value(s)")
        if "ordered_timestamps" in rules:
            points = stream.points
            if any(b.timestamp < a.timestamp for a, b in zip(points, points[1:])):
                issues.append(f"{label}: timestamps out of order")
        return issues


class IntegrationStepHandler(BaseStepHandler):
    """
    Package upstream streams and log files into an export summary.

    Parameters:
        systems: Target system names recorded in the payload (default ["DataWarehouse"])
    """

    kind = StepKind.INTEGRATION.value

    async def execute(self, step: ExecutionStep, context: ExecutionContext) -> Dict[str, Any]:
        await self.simulate_latency(step)
        systems = list(step.parameters.get("systems") or ["DataWarehouse"])

        streams = [
            stream
            for payload in context.dependency_results(step).values()
            for stream in iter_streams(payload)
        ]
        log_files = [
            log_file
            for payload in context.dependency_results(step).values()
            for log_file in iter_log_files(payload)
        ]
        records = sum(len(stream.points) for stream in streams)
        records += sum(len(log_file.entries) for log_file in log_files)
        payload_bytes = sum(len(stream.model_dump_json()) for stream in streams)
        payload_bytes += sum(len(log_file.model_dump_json()) for log_file in log_files)

        context.global_state["integrated_records"] = (
            context.global_state.get("integrated_records", 0) + records
        )
        return {
            "integrated_systems": systems,
            "streams": [stream.name for stream in streams],
            "log_files": [log_file.file_path for log_file in log_files],
            "records_integrated": records,
            "payload_bytes": payload_bytes,
        }

    async def rollback(self, step: ExecutionStep, context: ExecutionContext) -> None:
        result = context.step_results.get(step.id) or {}
        integrated = context.global_state.get("integrated_records", 0)
        context.global_state["integrated_records"] = max(
            0, integrated - result.get("records_integrated", 0)
        )


class CleanupStepHandler(BaseStepHandler):
    """
    Remove keys from ``context.global_state``.

    Parameters:
        keys: Global state keys to remove
    """

    kind = StepKind.CLEANUP.value

    async def execute(self, step: ExecutionStep, context: ExecutionContext) -> Dict[str, Any]:
        await self.simulate_latency(step)
        removed: Dict[str, Any] = {}
        missing: List[str] = []
        for key in step.parameters.get("keys") or []:
            if key in context.global_state:
                removed[key] = context.global_state.pop(key)
            else:
                missing.append(key)
        return {
            "removed_keys": list(removed),
            "missing_keys": missing,
            "removed_values": removed,
        }

    async def rollback(self, step: ExecutionStep, context: ExecutionContext) -> None:
        result = context.step_results.get(step.id) or {}
        context.global_state.update(result.get("removed_values", {}))


def create_default_registry(
    generator: Optional[TimeSeriesPatternGenerator] = None,
    log_generator: Optional[LogGenerator] = None,
) -> StepHandlerRegistry:
    """
    Build a registry holding the five built-in handlers.

    Args:
        generator: Pattern generator for the generation handler
        log_generator: Log generator for the generation handler
    """
    registry = StepHandlerRegistry()
    for handler in (
        GenerationStepHandler(generator, log_generator),
        AnalysisStepHandler(),
        ValidationStepHandler(),
        IntegrationStepHandler(),
        CleanupStepHandler(),
    ):
        registry.register(handler.kind, handler)
    return registry


__all__ = [
    "iter_streams",
    "iter_log_files",
    "GenerationStepHandler",
    "AnalysisStepHandler",
    "ValidationStepHandler",
    "IntegrationStepHandler",
    "CleanupStepHandler",
    "create_default_registry",
]
