"""
Data models for scenario execution.

Definitions (``ExecutionStep``, ``WorkflowValidation``, ``WorkflowDefinition``)
and the immutable ``WorkflowResult`` are pydantic models. The per-run
``ExecutionContext`` is a plain mutable dataclass owned by the executor for
the lifetime of one execution.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StepKind(str, Enum):
    """Built-in step kinds. Custom kinds are plain strings."""

    GENERATION = "generation"
    ANALYSIS = "analysis"
    VALIDATION = "validation"
    INTEGRATION = "integration"
    CLEANUP = "cleanup"


def normalize_kind(kind: Any) -> str:
    """Return the registry key for a step kind (enum member or string)."""
    if isinstance(kind, Enum):
        kind = kind.value
    normalized = str(kind).strip()
    if not normalized:
        raise ValueError("Step kind must be a non-empty string")
    return normalized


class ExecutionStep(BaseModel):
    """
    One unit of work in a workflow.

    Attributes:
        id: Unique identifier within the workflow
        name: Human-readable label (defaults to the id)
        kind: Handler kind; a StepKind or any registered custom kind
        dependencies: Step ids that must be completed before this step runs
        timeout_ms: Per-attempt timeout (executor default when None)
        max_retries: Extra attempts after the first (executor default when None)
        parameters: Opaque values passed to the handler
        condition: Optional predicate over the ExecutionContext; False skips the step

    Example:
        >>> step = ExecutionStep(
        ...     id="analyze",
        ...     kind=StepKind.ANALYSIS,
        ...     dependencies=["generate"],
        ...     timeout_ms=5000,
        ...     max_retries=1,
        ... )
    """

    id: str = Field(..., description="Step identifier", min_length=1)
    name: str = Field("", description="Human label")
    kind: str = Field(..., description="Handler kind")
    dependencies: List[str] = Field(default_factory=list, description="Upstream step ids")
    timeout_ms: Optional[int] = Field(None, description="Timeout per attempt", gt=0)
    max_retries: Optional[int] = Field(None, description="Retry attempts", ge=0)
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Handler parameters")
    condition: Optional[Callable[[Any], bool]] = Field(
        None, description="Run predicate over the execution context"
    )

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, value: Any) -> str:
        return normalize_kind(value)

    @field_validator("dependencies")
    @classmethod
    def _dedupe_dependencies(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))

    def model_post_init(self, __context: Any) -> None:
        if not self.name:
            self.name = self.id


class WorkflowValidation(BaseModel):
    """
    Success rules applied once execution ends.

    Attributes:
        required_results: Step ids whose results must be present
        success_criteria: Predicate over the final results mapping
        rollback_on_failure: Roll back completed steps after the first failure
    """

    required_results: List[str] = Field(default_factory=list)
    success_criteria: Optional[Callable[[Mapping[str, Any]], bool]] = None
    rollback_on_failure: bool = False

    model_config = ConfigDict(arbitrary_types_allowed=True)


class WorkflowDefinition(BaseModel):
    """
    A directed acyclic graph of steps plus configuration and success rules.

    Example:
        >>> definition = WorkflowDefinition(
        ...     id="wf-memory-leak",
        ...     name="Memory leak detection",
        ...     steps=[generate_step, analyze_step],
        ...     global_configuration={"environment": "staging"},
        ...     validation=WorkflowValidation(required_results=["analyze"]),
        ... )
    """

    id: str = Field(..., description="Workflow identifier", min_length=1)
    name: str = Field(..., description="Workflow name")
    description: str = Field("", description="Free-text description")
    version: str = Field("1.0.0", description="Definition version")
    steps: List[ExecutionStep] = Field(default_factory=list)
    global_configuration: Dict[str, Any] = Field(default_factory=dict)
    validation: WorkflowValidation = Field(default_factory=WorkflowValidation)

    def get_step(self, step_id: str) -> Optional[ExecutionStep]:
        """Return the step with ``step_id`` or None."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


@dataclass
class ExecutionMetrics:
    """Counters for one execution."""

    total_steps: int = 0
    completed_steps: int = 0
    failed_steps: int = 0
    skipped_steps: int = 0
    rolled_back_steps: int = 0
    step_durations: Dict[str, float] = field(default_factory=dict)  # ms


@dataclass
class ExecutionContext:
    """
    Mutable state of one workflow execution.

    Handlers receive the context by reference and may read ``step_results``
    and read/write ``global_state``. Status bookkeeping goes through the
    ``mark_*`` methods, which keep completed and failed ids disjoint.
    """

    execution_id: str
    workflow_id: str
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    current_step: Optional[str] = None
    completed_steps: Set[str] = field(default_factory=set)
    failed_steps: Set[str] = field(default_factory=set)
    skipped_steps: List[str] = field(default_factory=list)
    rolled_back_steps: List[str] = field(default_factory=list)
    completion_order: List[str] = field(default_factory=list)
    step_results: Dict[str, Any] = field(default_factory=dict)
    global_state: Dict[str, Any] = field(default_factory=dict)
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)
    errors: List[str] = field(default_factory=list)
    cancelled: bool = False

    def mark_completed(self, step_id: str, result: Any, duration_ms: float) -> None:
        self.failed_steps.discard(step_id)
        self.completed_steps.add(step_id)
        self.completion_order.append(step_id)
        self.step_results[step_id] = result
        self.metrics.completed_steps += 1
        self.metrics.step_durations[step_id] = duration_ms

    def mark_failed(self, step_id: str, error: str, duration_ms: Optional[float] = None) -> None:
        self.completed_steps.discard(step_id)
        self.failed_steps.add(step_id)
        self.metrics.failed_steps += 1
        if duration_ms is not None:
            self.metrics.step_durations[step_id] = duration_ms
        self.errors.append(f"Step '{step_id}' failed: {error}")

    def mark_skipped(self, step_id: str) -> None:
        self.skipped_steps.append(step_id)
        self.metrics.skipped_steps += 1

    def revert_completion(self, step_id: str) -> None:
        """Undo the bookkeeping of a completed step (rollback)."""
        if step_id not in self.completed_steps:
            return
        self.completed_steps.discard(step_id)
        self.completion_order.remove(step_id)
        self.step_results.pop(step_id, None)
        self.rolled_back_steps.append(step_id)
        self.metrics.completed_steps -= 1
        self.metrics.rolled_back_steps += 1

    def dependency_results(self, step: ExecutionStep) -> Dict[str, Any]:
        """Results of ``step``'s dependencies that are currently available."""
        return {
            dep_id: self.step_results[dep_id]
            for dep_id in step.dependencies
            if dep_id in self.step_results
        }


class WorkflowSummary(BaseModel):
    """Derived statistics for a finished execution."""

    total_steps: int = Field(0, ge=0)
    success_rate: float = Field(0.0, ge=0.0, le=1.0)
    average_step_duration_ms: float = Field(0.0, ge=0.0)
    bottleneck_steps: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class WorkflowResult(BaseModel):
    """
    Immutable snapshot of a finished execution (success, failure, or partial).

    Attributes:
        execution_id: Unique id of the run
        workflow_id: Definition that was run
        success: No failed steps, required results present, criteria met
        duration_ms: Wall-clock duration of the run
        completed_steps: Completed ids in completion order
        failed_steps: Failed ids in failure order
        skipped_steps: Skipped ids in execution order
        rolled_back_steps: Ids rolled back after a failure, in rollback order
        results: Copy of the final step results
        summary: Success rate, average duration, bottlenecks, recommendations
        errors: Error messages collected during the run
    """

    execution_id: str
    workflow_id: str
    success: bool
    duration_ms: float = Field(..., ge=0.0)
    started_at: datetime
    finished_at: datetime
    completed_steps: List[str] = Field(default_factory=list)
    failed_steps: List[str] = Field(default_factory=list)
    skipped_steps: List[str] = Field(default_factory=list)
    rolled_back_steps: List[str] = Field(default_factory=list)
    results: Dict[str, Any] = Field(default_factory=dict)
    summary: WorkflowSummary = Field(default_factory=WorkflowSummary)
    errors: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


__all__ = [
    "StepKind",
    "normalize_kind",
    "ExecutionStep",
    "WorkflowValidation",
    "WorkflowDefinition",
    "ExecutionMetrics",
    "ExecutionContext",
    "WorkflowSummary",
    "WorkflowResult",
]
