"""
Multi-step scenario execution engine.

Usage:
    from synthgen.executor import ScenarioExecutor, create_simple_workflow

    executor = ScenarioExecutor()
    result = await executor.execute_workflow(
        create_simple_workflow([
            {"id": "gen", "kind": "generation"},
            {"id": "analyze", "kind": "analysis"},
            {"id": "validate", "kind": "validation"},
        ])
    )
"""

from synthgen.executor.builders import create_simple_workflow
from synthgen.executor.builtin import create_default_registry
from synthgen.executor.exceptions import (
    CyclicDependencyError,
    StepExecutionError,
    StepTimeoutError,
    StepValidationError,
    UnknownStepKindError,
    WorkflowConfigurationError,
    WorkflowDefinitionError,
)
from synthgen.executor.executor import ScenarioExecutor
from synthgen.executor.handlers import (
    BaseStepHandler,
    FunctionStepHandler,
    StepHandler,
    StepHandlerRegistry,
)
from synthgen.executor.models import (
    ExecutionContext,
    ExecutionMetrics,
    ExecutionStep,
    StepKind,
    WorkflowDefinition,
    WorkflowResult,
    WorkflowSummary,
    WorkflowValidation,
)
from synthgen.executor.ordering import compute_execution_order

__all__ = [
    "ScenarioExecutor",
    "create_simple_workflow",
    "create_default_registry",
    "compute_execution_order",
    "StepHandler",
    "BaseStepHandler",
    "FunctionStepHandler",
    "StepHandlerRegistry",
    "StepKind",
    "ExecutionStep",
    "WorkflowValidation",
    "WorkflowDefinition",
    "ExecutionContext",
    "ExecutionMetrics",
    "WorkflowSummary",
    "WorkflowResult",
    "WorkflowConfigurationError",
    "WorkflowDefinitionError",
    "CyclicDependencyError",
    "UnknownStepKindError",
    "StepExecutionError",
    "StepTimeoutError",
    "StepValidationError",
]
