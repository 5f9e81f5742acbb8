"""
Scenario Executor

Runs workflow definitions: a DAG of typed steps executed one at a time in
dependency order, each bounded by a timeout and retried with linear backoff.
Optional rollback reverts completed steps after the first failure.

Ordinary step failures never raise; they are reported in the returned
``WorkflowResult``. Structural problems (cycles, unknown kinds, dangling
dependencies, duplicate ids) raise a ``WorkflowConfigurationError`` before any
step runs.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

import structlog

from synthgen.config import ExecutorConfig
from synthgen.executor.builtin import create_default_registry
from synthgen.executor.exceptions import (
    StepTimeoutError,
    UnknownStepKindError,
    WorkflowDefinitionError,
)
from synthgen.executor.handlers import HandlerLike, StepHandlerRegistry
from synthgen.executor.models import (
    ExecutionContext,
    ExecutionStep,
    WorkflowDefinition,
    WorkflowResult,
    WorkflowSummary,
    WorkflowValidation,
    normalize_kind,
)
from synthgen.executor.ordering import compute_execution_order
from synthgen.observability import get_logger
from synthgen.observability.logging import clear_correlation_id, get_correlation_id, set_correlation_id
from synthgen.observability.metrics import increment_counter, record_histogram, workflows_active
from synthgen.patterns.generator import TimeSeriesPatternGenerator


def _new_execution_id() -> str:
    return f"exec-{uuid.uuid4().hex[:12]}"


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class ScenarioExecutor:
    """
    Execute multi-step workflow definitions.

    Example:
        >>> executor = ScenarioExecutor()
        >>> definition = create_simple_workflow([
        ...     {"id": "gen", "kind": "generation", "parameters": {"scenario": "stress_test"}},
        ...     {"id": "analyze", "kind": "analysis"},
        ...     {"id": "validate", "kind": "validation"},
        ... ])
        >>> result = await executor.execute_workflow(definition)
        >>> result.success
        True
    """

    def __init__(
        self,
        registry: Optional[StepHandlerRegistry] = None,
        config: Optional[ExecutorConfig] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        generator: Optional[TimeSeriesPatternGenerator] = None,
    ):
        """
        Initialize the executor.

        Args:
            registry: Handler registry (defaults to a fresh registry of built-ins)
            config: Executor configuration (timeouts, retries, backoff)
            logger: Logger to use (defaults to the module logger)
            generator: Pattern generator for the built-in generation handler;
                ignored when ``registry`` is given
        """
        self._config = config or ExecutorConfig()
        self._registry = registry if registry is not None else create_default_registry(generator)
        self._logger = logger or get_logger(__name__)
        self._active: Dict[str, ExecutionContext] = {}

    @property
    def registry(self) -> StepHandlerRegistry:
        return self._registry

    @property
    def config(self) -> ExecutorConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register_step_handler(self, kind: Any, handler: HandlerLike) -> None:
        """Register (or replace) the handler for a step kind."""
        self._registry.register(kind, handler, replace=True)
        self._logger.info("step_handler_registered", kind=normalize_kind(kind))

    async def execute_workflow(self, definition: WorkflowDefinition) -> WorkflowResult:
        """
        Run a workflow definition to completion.

        Args:
            definition: Workflow to run

        Returns:
            WorkflowResult describing completed, failed, skipped and rolled back steps

        Raises:
            WorkflowConfigurationError: If the definition cannot be run
        """
        order = self._validate_definition(definition)
        steps_by_id = {step.id: step for step in definition.steps}

        context = ExecutionContext(
            execution_id=_new_execution_id(),
            workflow_id=definition.id,
            global_state=dict(definition.global_configuration),
        )
        context.metrics.total_steps = len(definition.steps)

        previous_correlation_id = get_correlation_id()
        set_correlation_id(context.execution_id)
        self._active[context.execution_id] = context
        workflows_active.inc()
        start = time.perf_counter()

        self._logger.info(
            "workflow_started",
            workflow_id=definition.id,
            execution_id=context.execution_id,
            total_steps=len(order),
        )

        try:
            for step_id in order:
                if context.cancelled:
                    context.errors.append("Execution cancelled")
                    self._logger.warning(
                        "workflow_cancelled",
                        workflow_id=definition.id,
                        next_step=step_id,
                    )
                    break

                succeeded = await self._execute_step(steps_by_id[step_id], context)

                if not succeeded and definition.validation.rollback_on_failure:
                    await self._rollback(context, steps_by_id)
                    break

            result = self._build_result(definition, context, order, _elapsed_ms(start))
        finally:
            self._active.pop(context.execution_id, None)
            workflows_active.dec()
            if previous_correlation_id is None:
                clear_correlation_id()
            else:
                set_correlation_id(previous_correlation_id)

        outcome = "succeeded" if result.success else "failed"
        increment_counter("workflows_total", labels={"outcome": outcome})
        record_histogram(
            "workflow_duration_seconds", result.duration_ms / 1000, labels={"outcome": outcome}
        )
        self._logger.info(
            "workflow_completed",
            workflow_id=definition.id,
            execution_id=result.execution_id,
            success=result.success,
            duration_ms=round(result.duration_ms, 2),
            completed=len(result.completed_steps),
            failed=len(result.failed_steps),
            skipped=len(result.skipped_steps),
            rolled_back=len(result.rolled_back_steps),
        )
        return result

    async def execute_multi_step_scenario(
        self,
        steps: Sequence[Union[ExecutionStep, Mapping[str, Any]]],
        global_config: Optional[Mapping[str, Any]] = None,
    ) -> WorkflowResult:
        """
        Run ad-hoc steps as a workflow that requires every step's result.

        Args:
            steps: ExecutionStep instances or equivalent mappings
            global_config: Initial global state
        """
        parsed = [
            step if isinstance(step, ExecutionStep) else ExecutionStep(**step) for step in steps
        ]
        step_ids = [step.id for step in parsed]
        definition = WorkflowDefinition(
            id=f"multi-step-{uuid.uuid4().hex[:8]}",
            name="Multi-Step Scenario",
            description="Dynamically created multi-step scenario",
            steps=parsed,
            global_configuration=dict(global_config or {}),
            validation=WorkflowValidation(
                required_results=step_ids,
                success_criteria=lambda results: len(results) == len(step_ids),
            ),
        )
        return await self.execute_workflow(definition)

    async def execute_batch(
        self,
        definitions: Iterable[WorkflowDefinition],
        concurrent: bool = False,
    ) -> List[WorkflowResult]:
        """
        Run several workflows, sequentially or concurrently.

        A definition that raises produces a failed result in its slot; the
        other definitions still run.

        Args:
            definitions: Workflows to run
            concurrent: Run all workflows at once with asyncio.gather

        Returns:
            One WorkflowResult per definition, in input order
        """
        definitions = list(definitions)
        self._logger.info("batch_started", count=len(definitions), concurrent=concurrent)

        outcomes: List[Any]
        if concurrent:
            outcomes = await asyncio.gather(
                *(self.execute_workflow(definition) for definition in definitions),
                return_exceptions=True,
            )
        else:
            outcomes = []
            for definition in definitions:
                try:
                    outcomes.append(await self.execute_workflow(definition))
                except Exception as exc:
                    outcomes.append(exc)

        results: List[WorkflowResult] = []
        for definition, outcome in zip(definitions, outcomes):
            if isinstance(outcome, WorkflowResult):
                results.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            self._logger.error(
                "batch_workflow_failed",
                workflow_id=definition.id,
                error=str(outcome),
                error_type=type(outcome).__name__,
            )
            results.append(self._failed_result(definition, outcome))
        return results

    def get_active_executions(self) -> List[str]:
        """Ids of executions currently running."""
        return list(self._active.keys())

    def get_execution_status(self, execution_id: str) -> Optional[ExecutionContext]:
        """Live context of a running execution, or None."""
        return self._active.get(execution_id)

    def cancel_execution(self, execution_id: str) -> bool:
        """
        Cancel a running execution.

        The run stops before its next step; the step in progress is allowed
        to finish.

        Returns:
            True if the execution was active
        """
        context = self._active.pop(execution_id, None)
        if context is None:
            return False
        context.cancelled = True
        self._logger.warning("execution_cancel_requested", execution_id=execution_id)
        return True

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_definition(self, definition: WorkflowDefinition) -> List[str]:
        """Check structure and return the execution order."""
        seen: set[str] = set()
        for step in definition.steps:
            if step.id in seen:
                raise WorkflowDefinitionError(
                    f"Duplicate step id: {step.id}", workflow_id=definition.id
                )
            seen.add(step.id)

        for step in definition.steps:
            for dep_id in step.dependencies:
                if dep_id not in seen:
                    raise WorkflowDefinitionError(
                        f"Step '{step.id}' depends on unknown step '{dep_id}'",
                        workflow_id=definition.id,
                    )

        unknown: Dict[str, List[str]] = {}
        for step in definition.steps:
            if not self._registry.has_handler(step.kind):
                unknown.setdefault(step.kind, []).append(step.id)
        if unknown:
            kind, step_ids = next(iter(unknown.items()))
            raise UnknownStepKindError(kind, step_ids, self._registry.list_kinds())

        return compute_execution_order(definition.steps)

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------

    async def _execute_step(self, step: ExecutionStep, context: ExecutionContext) -> bool:
        """Run one step with condition, dependency, timeout and retry handling."""
        context.current_step = step.id
        log = self._logger.bind(step_id=step.id, kind=step.kind)

        if step.condition is not None:
            try:
                should_run = bool(step.condition(context))
            except Exception as exc:
                self._fail_step(context, step, f"Condition raised: {exc}")
                log.error("step_condition_failed", error=str(exc))
                return False
            if not should_run:
                context.mark_skipped(step.id)
                increment_counter("steps_total", labels={"status": "skipped"})
                log.info("step_skipped", reason="condition")
                return True

        missing = [dep for dep in step.dependencies if dep not in context.completed_steps]
        if missing:
            self._fail_step(context, step, f"Dependencies not met: {', '.join(missing)}")
            log.warning("step_dependencies_not_met", missing=missing)
            return False

        handler = self._registry.get(step.kind)
        if handler is None:
            self._fail_step(context, step, f"No handler registered for step kind: {step.kind}")
            return False

        timeout_ms = step.timeout_ms or self._config.default_timeout_ms
        max_retries = (
            step.max_retries if step.max_retries is not None else self._config.default_max_retries
        )
        max_attempts = max_retries + 1
        start = time.perf_counter()
        last_error: Optional[BaseException] = None

        log.debug("step_started", timeout_ms=timeout_ms, max_attempts=max_attempts)

        for attempt in range(1, max_attempts + 1):
            try:
                result = await asyncio.wait_for(
                    handler.execute(step, context), timeout=timeout_ms / 1000
                )
            except asyncio.TimeoutError:
                last_error = StepTimeoutError(step.id, timeout_ms)
                attempt_result = "timeout"
            except Exception as exc:
                last_error = exc
                attempt_result = "error"
            else:
                duration_ms = _elapsed_ms(start)
                context.mark_completed(step.id, result, duration_ms)
                increment_counter(
                    "step_attempts_total", labels={"kind": step.kind, "result": "success"}
                )
                increment_counter("steps_total", labels={"status": "completed"})
                record_histogram(
                    "step_duration_seconds", duration_ms / 1000, labels={"kind": step.kind}
                )
                log.info("step_completed", attempt=attempt, duration_ms=round(duration_ms, 2))
                return True

            increment_counter(
                "step_attempts_total", labels={"kind": step.kind, "result": attempt_result}
            )
            log.warning(
                "step_attempt_failed",
                attempt=attempt,
                max_attempts=max_attempts,
                error=str(last_error),
                error_type=type(last_error).__name__,
            )

            if attempt < max_attempts:
                delay = attempt * self._config.retry_base_delay_seconds
                if delay > 0:
                    await asyncio.sleep(delay)

        duration_ms = _elapsed_ms(start)
        self._fail_step(context, step, str(last_error), duration_ms)
        record_histogram("step_duration_seconds", duration_ms / 1000, labels={"kind": step.kind})
        log.error("step_failed", attempts=max_attempts, error=str(last_error))
        return False

    @staticmethod
    def _fail_step(
        context: ExecutionContext,
        step: ExecutionStep,
        error: str,
        duration_ms: Optional[float] = None,
    ) -> None:
        context.mark_failed(step.id, error, duration_ms)
        increment_counter("steps_total", labels={"status": "failed"})

    async def _rollback(
        self, context: ExecutionContext, steps_by_id: Mapping[str, ExecutionStep]
    ) -> None:
        """Roll back completed steps in reverse completion order."""
        to_revert = list(reversed(context.completion_order))
        self._logger.warning("workflow_rollback_started", steps=to_revert)

        for step_id in to_revert:
            step = steps_by_id[step_id]
            handler = self._registry.get(step.kind)
            if handler is not None:
                timeout_ms = step.timeout_ms or self._config.default_timeout_ms
                try:
                    await asyncio.wait_for(
                        handler.rollback(step, context), timeout=timeout_ms / 1000
                    )
                except Exception as exc:
                    context.errors.append(f"Rollback of step '{step_id}' failed: {exc}")
                    self._logger.error(
                        "step_rollback_failed",
                        step_id=step_id,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
            context.revert_completion(step_id)
            increment_counter("steps_total", labels={"status": "rolled_back"})
            self._logger.debug("step_rolled_back", step_id=step_id)

    # ------------------------------------------------------------------
    # Result synthesis
    # ------------------------------------------------------------------

    def _build_result(
        self,
        definition: WorkflowDefinition,
        context: ExecutionContext,
        order: Sequence[str],
        duration_ms: float,
    ) -> WorkflowResult:
        validation = definition.validation
        results = dict(context.step_results)
        errors = list(context.errors)

        missing = [step_id for step_id in validation.required_results if step_id not in results]
        for step_id in missing:
            errors.append(f"Missing required result: {step_id}")

        criteria_met = True
        if validation.success_criteria is not None:
            try:
                criteria_met = bool(validation.success_criteria(results))
            except Exception as exc:
                criteria_met = False
                errors.append(f"Success criteria raised: {exc}")
            else:
                if not criteria_met:
                    errors.append("Success criteria not met")

        # Steps run one at a time, so execution order is failure order.
        failed = [step_id for step_id in order if step_id in context.failed_steps]
        success = not failed and not missing and criteria_met and not context.cancelled

        return WorkflowResult(
            execution_id=context.execution_id,
            workflow_id=definition.id,
            success=success,
            duration_ms=duration_ms,
            started_at=context.started_at,
            finished_at=datetime.now(timezone.utc),
            completed_steps=list(context.completion_order),
            failed_steps=failed,
            skipped_steps=list(context.skipped_steps),
            rolled_back_steps=list(context.rolled_back_steps),
            results=results,
            summary=self._summarize(context),
            errors=errors,
        )

    def _summarize(self, context: ExecutionContext) -> WorkflowSummary:
        metrics = context.metrics
        durations = metrics.step_durations
        average = sum(durations.values()) / len(durations) if durations else 0.0
        bottlenecks = self._identify_bottlenecks(durations, average)

        success_rate = metrics.completed_steps / metrics.total_steps if metrics.total_steps else 0.0

        recommendations: List[str] = []
        if context.failed_steps:
            recommendations.append("Review failed steps and fix underlying issues")
        if metrics.total_steps and metrics.failed_steps / metrics.total_steps > 0.2:
            recommendations.append(
                "High failure rate detected; consider reviewing step dependencies"
            )
        if bottlenecks:
            recommendations.append(
                f"Optimize performance of bottleneck steps: {', '.join(bottlenecks)}"
            )
        if metrics.skipped_steps:
            recommendations.append("Review step conditions to ensure necessary steps are executed")

        return WorkflowSummary(
            total_steps=metrics.total_steps,
            success_rate=min(1.0, max(0.0, success_rate)),
            average_step_duration_ms=average,
            bottleneck_steps=bottlenecks,
            recommendations=recommendations,
        )

    def _identify_bottlenecks(self, durations: Mapping[str, float], average: float) -> List[str]:
        threshold = average * self._config.bottleneck_factor
        slow = [(step_id, d) for step_id, d in durations.items() if d > threshold]
        slow.sort(key=lambda item: item[1], reverse=True)
        return [step_id for step_id, _ in slow[: self._config.max_bottlenecks]]

    def _failed_result(self, definition: WorkflowDefinition, error: BaseException) -> WorkflowResult:
        now = datetime.now(timezone.utc)
        return WorkflowResult(
            execution_id=f"failed-{uuid.uuid4().hex[:12]}",
            workflow_id=definition.id,
            success=False,
            duration_ms=0.0,
            started_at=now,
            finished_at=now,
            summary=WorkflowSummary(
                total_steps=len(definition.steps),
                recommendations=["Fix critical errors before retry"],
            ),
            errors=[str(error) or type(error).__name__],
        )


__all__ = ["ScenarioExecutor"]
