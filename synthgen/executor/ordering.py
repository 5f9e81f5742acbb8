"""
Execution ordering for workflow steps.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Sequence, Set, Tuple

from synthgen.executor.exceptions import CyclicDependencyError, WorkflowDefinitionError
from synthgen.executor.models import ExecutionStep


def compute_execution_order(steps: Sequence[ExecutionStep]) -> List[str]:
    """
    Order steps so every step follows all of its dependencies.

    Depth-first post-order over the dependency graph, visiting steps in
    declaration order. Independent steps keep their declaration order.

    Args:
        steps: Workflow steps

    Returns:
        Step ids in execution order

    Raises:
        CyclicDependencyError: If a dependency cycle is found
        WorkflowDefinitionError: If a step depends on an unknown step

    Example:
        >>> compute_execution_order([
        ...     ExecutionStep(id="b", kind="analysis", dependencies=["a"]),
        ...     ExecutionStep(id="a", kind="generation"),
        ... ])
        ['a', 'b']
    """
    by_id: Dict[str, ExecutionStep] = {step.id: step for step in steps}
    order: List[str] = []
    visited: Set[str] = set()
    visiting: Set[str] = set()

    def dependencies_of(step_id: str) -> Iterator[str]:
        step = by_id.get(step_id)
        if step is None:
            raise WorkflowDefinitionError(f"Unknown step referenced: {step_id}")
        return iter(step.dependencies)

    # Explicit stack of (step id, remaining dependencies) so long chains do
    # not hit the interpreter recursion limit.
    for root in steps:
        if root.id in visited:
            continue
        visiting.add(root.id)
        stack: List[Tuple[str, Iterator[str]]] = [(root.id, dependencies_of(root.id))]
        while stack:
            step_id, pending = stack[-1]
            for dep_id in pending:
                if dep_id in visiting:
                    raise CyclicDependencyError(dep_id)
                if dep_id in visited:
                    continue
                stack.append((dep_id, dependencies_of(dep_id)))
                visiting.add(dep_id)
                break
            else:
                stack.pop()
                visiting.discard(step_id)
                visited.add(step_id)
                order.append(step_id)

    return order


__all__ = ["compute_execution_order"]
