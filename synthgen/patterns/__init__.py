"""
Pattern-driven synthetic metric streams and log files.
"""

from synthgen.patterns.exceptions import PatternGenerationError
from synthgen.patterns.generator import TimeSeriesPatternGenerator
from synthgen.patterns.logs import (
    LogEntry,
    LogFile,
    LogGenerationRequest,
    LogGenerationResult,
    LogGenerator,
    LogLevel,
    LogPattern,
)
from synthgen.patterns.models import (
    GenerationRequest,
    MetricPoint,
    MetricStream,
    MetricType,
    PatternType,
    StreamMetadata,
)
from synthgen.patterns.scenarios import SCENARIO_PRESETS, get_scenario
from synthgen.patterns.shapes import PatternState

__all__ = [
    "TimeSeriesPatternGenerator",
    "LogGenerator",
    "LogGenerationRequest",
    "LogGenerationResult",
    "LogEntry",
    "LogFile",
    "LogLevel",
    "LogPattern",
    "GenerationRequest",
    "MetricPoint",
    "MetricStream",
    "MetricType",
    "PatternType",
    "PatternState",
    "StreamMetadata",
    "PatternGenerationError",
    "SCENARIO_PRESETS",
    "get_scenario",
]
