"""
synthgen: synthetic monitoring data and multi-step scenario execution.
"""

from synthgen.executor import ScenarioExecutor, WorkflowDefinition, WorkflowResult, create_simple_workflow
from synthgen.patterns import (
    GenerationRequest,
    LogGenerationRequest,
    LogGenerator,
    MetricStream,
    TimeSeriesPatternGenerator,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "ScenarioExecutor",
    "WorkflowDefinition",
    "WorkflowResult",
    "create_simple_workflow",
    "TimeSeriesPatternGenerator",
    "GenerationRequest",
    "MetricStream",
    "LogGenerator",
    "LogGenerationRequest",
]
