"""
Scenario executor exceptions.

Two families:

- ``WorkflowConfigurationError`` and subclasses: structural problems found
  before any step runs. Fatal; callers must not retry them.
- ``StepExecutionError`` and subclasses: raised inside a single step attempt.
  The executor retries them and records exhaustion as a step failure; they
  never escape ``execute_workflow``.
"""

from __future__ import annotations

from typing import Iterable, Optional


class WorkflowConfigurationError(Exception):
    """Base class for errors that make a workflow impossible to run."""


class WorkflowDefinitionError(WorkflowConfigurationError):
    """
    Raised for a malformed workflow definition.

    Attributes:
        workflow_id: Workflow that failed validation
    """

    def __init__(self, message: str, workflow_id: Optional[str] = None):
        super().__init__(message)
        self.workflow_id = workflow_id


class CyclicDependencyError(WorkflowConfigurationError):
    """
    Raised when the step dependency graph contains a cycle.

    Attributes:
        step_id: Step at which the cycle was detected
    """

    def __init__(self, step_id: str):
        super().__init__(f"Circular dependency detected involving step: {step_id}")
        self.step_id = step_id


class UnknownStepKindError(WorkflowConfigurationError):
    """
    Raised when a step references a kind with no registered handler.

    Attributes:
        kind: The unregistered kind
        step_ids: Steps that use it
        available_kinds: Kinds that are registered
    """

    def __init__(self, kind: str, step_ids: Iterable[str], available_kinds: Iterable[str]):
        self.kind = kind
        self.step_ids = list(step_ids)
        self.available_kinds = sorted(available_kinds)
        super().__init__(
            f"No handler registered for step kind '{kind}' "
            f"(steps: {', '.join(self.step_ids)}; "
            f"registered: {', '.join(self.available_kinds) or 'none'})"
        )


class StepExecutionError(RuntimeError):
    """
    Base class for failures of a single step attempt.

    Attributes:
        step_id: Step that failed
    """

    def __init__(self, message: str, step_id: Optional[str] = None):
        super().__init__(message)
        self.step_id = step_id


class StepTimeoutError(StepExecutionError):
    """
    Raised when a step attempt does not finish within its timeout.

    Attributes:
        timeout_ms: The timeout that elapsed
    """

    def __init__(self, step_id: str, timeout_ms: int):
        super().__init__(f"Operation timed out after {timeout_ms}ms", step_id=step_id)
        self.timeout_ms = timeout_ms


class StepValidationError(StepExecutionError):
    """
    Raised by the validation handler when generated data breaks a rule.

    Attributes:
        issues: Rule violations found
    """

    def __init__(self, step_id: str, issues: Iterable[str]):
        self.issues = list(issues)
        super().__init__(
            f"Validation failed with {len(self.issues)} issue(s): {'; '.join(self.issues[:5])}",
            step_id=step_id,
        )


__all__ = [
    "WorkflowConfigurationError",
    "WorkflowDefinitionError",
    "CyclicDependencyError",
    "UnknownStepKindError",
    "StepExecutionError",
    "StepTimeoutError",
    "StepValidationError",
]
