"""
Helpers for building common workflow shapes.
"""

from __future__ import annotations

import uuid
from typing import Any, Mapping, Sequence, Union

from synthgen.executor.models import ExecutionStep, WorkflowDefinition, WorkflowValidation

SIMPLE_WORKFLOW_MAX_RETRIES = 2
SIMPLE_WORKFLOW_TIMEOUT_MS = 30_000


def create_simple_workflow(
    steps: Sequence[Union[ExecutionStep, Mapping[str, Any]]],
    name: str = "Simple Sequential Workflow",
) -> WorkflowDefinition:
    """
    Chain steps linearly: each depends on the one before it.

    Dependencies, retries and timeout given on the input steps are replaced.
    Every step's result is required.

    Example:
        >>> definition = create_simple_workflow([
        ...     {"id": "gen", "kind": "generation"},
        ...     {"id": "analyze", "kind": "analysis"},
        ... ])
        >>> definition.steps[1].dependencies
        ['gen']
    """
    chained = []
    previous_id = None
    for raw in steps:
        data = raw.model_dump() if isinstance(raw, ExecutionStep) else dict(raw)
        data.update(
            dependencies=[previous_id] if previous_id else [],
            max_retries=SIMPLE_WORKFLOW_MAX_RETRIES,
            timeout_ms=SIMPLE_WORKFLOW_TIMEOUT_MS,
        )
        step = ExecutionStep(**data)
        chained.append(step)
        previous_id = step.id

    step_ids = [step.id for step in chained]
    return WorkflowDefinition(
        id=f"simple-workflow-{uuid.uuid4().hex[:8]}",
        name=name,
        description="Auto-generated sequential workflow",
        steps=chained,
        validation=WorkflowValidation(
            required_results=step_ids,
            success_criteria=lambda results: len(results) == len(step_ids),
        ),
    )


__all__ = ["create_simple_workflow"]
