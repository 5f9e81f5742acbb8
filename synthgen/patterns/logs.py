"""
Synthetic log generation.

Produces one log file per source, each a time-ordered run of templated
entries. The log pattern scales both the entry rate and the error rate:

- ``normal``: base rate, spacing jittered between 0.5x and 1.5x
- ``burst``: 0.3x base rate; each block of 50 entries opens with 10 entries
  at 0.1x spacing and the rest at 3x; every third block has 5x the error
  rate, the others 0.5x
- ``error-heavy``: 1.5x base rate, 3x error rate, spacing tightening from
  2x to 1x over the run
- ``sparse``: 0.4x base rate, 0.3x error rate, random gaps of 1x-4x
- ``structured``: 0.8x base rate, spacing between 0.8x and 1.2x

Determinism:
    Pass ``seed`` or an explicit ``random.Random`` to get reproducible files.
"""

from __future__ import annotations

import random
import string
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, model_validator

from synthgen.config import GeneratorConfig
from synthgen.observability import get_logger
from synthgen.observability.metrics import increment_counter


class LogLevel(str, Enum):
    """Severity of a log entry."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"


class LogPattern(str, Enum):
    """Rate and severity profile of a generated log file."""

    NORMAL = "normal"
    BURST = "burst"
    ERROR_HEAVY = "error-heavy"
    SPARSE = "sparse"
    STRUCTURED = "structured"


class ErrorType(str, Enum):
    """Problem categories an injected entry can be labelled with."""

    NULL_POINTER = "null_pointer"
    TYPE_ERROR = "type_error"
    MEMORY_LEAK = "memory_leak"
    BUFFER_OVERFLOW = "buffer_overflow"
    API_TIMEOUT = "api_timeout"
    DATABASE_CONNECTION = "database_connection"
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_DENIED = "permission_denied"
    SYNTAX_ERROR = "syntax_error"
    LOGIC_ERROR = "logic_error"


DEFAULT_SOURCES = (
    "api-gateway",
    "user-service",
    "auth-service",
    "database-service",
    "cache-service",
    "notification-service",
    "payment-service",
    "analytics-service",
    "file-service",
    "monitoring-service",
)

RATE_FACTORS: Dict[LogPattern, float] = {
    LogPattern.NORMAL: 1.0,
    LogPattern.BURST: 0.3,
    LogPattern.ERROR_HEAVY: 1.5,
    LogPattern.SPARSE: 0.4,
    LogPattern.STRUCTURED: 0.8,
}

BURST_BLOCK = 50
BURST_LENGTH = 10
# Chance that an entry carries an injected problem, per unit of injection_frequency.
INJECTION_SCALE = 0.1

MESSAGE_TEMPLATES: Dict[LogLevel, tuple[str, ...]] = {
    LogLevel.DEBUG: (
        "Entering function {function} with args {args}",
        "Variable {var} = {value}",
        "SQL query: {query}",
        "HTTP request: {method} {url}",
        "Cache operation: {operation} on {key}",
        "Thread {thread} processing {task}",
        "Memory usage: {heap}/{total} MB",
        "Processing step {step}: {description}",
        "State transition: {from} -> {to}",
        "Debug checkpoint reached: {checkpoint}",
    ),
    LogLevel.INFO: (
        "Request processed successfully",
        "User {userId} logged in from {ip}",
        "Cache hit for key {key}",
        "Database connection established",
        "Service {service} started on port {port}",
        "Processing batch of {count} items",
        "Configuration loaded from {file}",
        "Health check passed for {component}",
        "Scheduled job {job} completed",
        "API rate limit reset for {user}",
    ),
    LogLevel.WARN: (
        "High memory usage detected: {memory}%",
        "Slow query detected: {duration}ms",
        "Cache miss for frequently accessed key {key}",
        "Deprecated API endpoint used: {endpoint}",
        "Retry attempt {attempt} for {operation}",
        "Connection pool nearing capacity: {used}/{total}",
        "Disk space low on {disk}: {space}% remaining",
        "Rate limit approaching for {user}: {requests}/{limit}",
        "SSL certificate expires in {days} days",
        "Background job {job} taking longer than expected",
    ),
    LogLevel.ERROR: (
        "Database connection failed: {error}",
        "Authentication failed for user {user}",
        "API request timeout: {endpoint}",
        "Failed to parse configuration: {file}",
        "Service {service} unavailable",
        "Memory allocation failed",
        "File not found: {filename}",
        "Permission denied for operation {operation}",
        "Network connection lost",
        "Invalid input data: {data}",
    ),
    LogLevel.FATAL: (
        "System out of memory",
        "Database server unreachable",
        "Critical service {service} crashed",
        "Security breach detected",
        "Data corruption in {table}",
        "System overload - shutting down",
        "Critical configuration error",
        "Unrecoverable error in {component}",
        "System integrity check failed",
        "Emergency shutdown initiated",
    ),
}

STACK_TRACES = (
    'File "/app/api/handler.py", line 42, in process_request\n'
    'File "/app/api/router.py", line 95, in dispatch\n'
    'File "/app/server.py", line 137, in handle',
    'File "/app/db/connection.py", line 128, in query\n'
    'File "/app/services/user.py", line 56, in find_by_id\n'
    'File "/app/controllers/auth.py", line 89, in authenticate',
    'File "/app/utils/memory.py", line 34, in allocate\n'
    'File "/app/services/cache.py", line 67, in store\n'
    'File "/app/processors/request.py", line 91, in handle',
)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36",
)

_USERNAMES = ("alice", "bob", "charlie", "diana", "eve", "frank")
_ENDPOINTS = ("users", "posts", "comments", "auth", "profile", "settings")
_OPERATIONS = ("read", "write", "delete", "update", "create")
_ERROR_MESSAGES = (
    "Connection timeout",
    "Invalid credentials",
    "Resource not found",
    "Permission denied",
    "Internal server error",
)
_FUNCTION_NAMES = ("process_request", "validate_user", "save_data", "load_config", "handle_error")
_VARIABLE_NAMES = ("result", "data", "config", "user", "request", "response")
_HTTP_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")
_TOKEN_ALPHABET = string.ascii_lowercase + string.digits
_FORMATTER = string.Formatter()


def _token(rng: random.Random, length: int) -> str:
    return "".join(rng.choice(_TOKEN_ALPHABET) for _ in range(length))


# Template placeholder -> value source. ``service``/``component`` come from the log source.
_FILLERS: Dict[str, Callable[[random.Random], str]] = {
    "userId": lambda rng: f"user-{rng.randrange(10_000)}",
    "ip": lambda rng: ".".join(str(rng.randrange(255)) for _ in range(4)),
    "key": lambda rng: f"cache:{_token(rng, 6)}",
    "port": lambda rng: str(3000 + rng.randrange(9000)),
    "count": lambda rng: str(rng.randint(1, 1000)),
    "file": lambda rng: "/config/app.json",
    "job": lambda rng: f"job-{rng.randrange(100)}",
    "user": lambda rng: rng.choice(_USERNAMES),
    "memory": lambda rng: str(rng.randint(60, 99)),
    "duration": lambda rng: str(rng.randint(1000, 5999)),
    "endpoint": lambda rng: f"/api/v1/{rng.choice(_ENDPOINTS)}",
    "attempt": lambda rng: str(rng.randint(1, 5)),
    "operation": lambda rng: rng.choice(_OPERATIONS),
    "used": lambda rng: str(rng.randint(10, 89)),
    "total": lambda rng: "100",
    "disk": lambda rng: "/var/log",
    "space": lambda rng: str(rng.randint(5, 24)),
    "requests": lambda rng: str(rng.randint(100, 999)),
    "limit": lambda rng: "1000",
    "days": lambda rng: str(rng.randint(1, 30)),
    "error": lambda rng: rng.choice(_ERROR_MESSAGES),
    "filename": lambda rng: f"/tmp/file-{rng.randrange(1000)}.tmp",
    "data": lambda rng: "invalid_json_format",
    "table": lambda rng: f"users_{rng.randrange(10)}",
    "function": lambda rng: rng.choice(_FUNCTION_NAMES),
    "args": lambda rng: "(request,)",
    "var": lambda rng: rng.choice(_VARIABLE_NAMES),
    "value": lambda rng: str(rng.randrange(1000)),
    "query": lambda rng: "SELECT * FROM users WHERE id = ?",
    "method": lambda rng: rng.choice(_HTTP_METHODS),
    "url": lambda rng: f"/api/{rng.choice(_ENDPOINTS)}",
    "thread": lambda rng: f"thread-{rng.randrange(10)}",
    "task": lambda rng: f"task-{rng.randrange(100)}",
    "heap": lambda rng: str(rng.randint(256, 767)),
    "step": lambda rng: str(rng.randint(1, 10)),
    "description": lambda rng: "processing user request",
    "from": lambda rng: "idle",
    "to": lambda rng: "processing",
    "checkpoint": lambda rng: f"checkpoint-{rng.randint(1, 20)}",
}


class LogGenerationRequest(BaseModel):
    """
    Request for a set of synthetic log files.

    Attributes:
        duration_seconds: Time span covered by each file
        base_frequency: Entries per second before the pattern's rate factor
        pattern: Rate and severity profile
        error_rate: Base share of WARN/ERROR/FATAL entries (scaled by pattern)
        sources: Log sources, one file each; drawn from DEFAULT_SOURCES when empty
        source_count: Number of sources drawn when ``sources`` is empty
        include_stack_traces: Attach a stack trace to ERROR/FATAL entries
        injection_frequency: Problem injection intensity in [0, 1]
        error_types: Categories an injected entry is labelled with
        scenario_id: Scenario the entries belong to (also names the files)
        max_entries_per_source: Hard cap on entries per file

    Example:
        >>> request = LogGenerationRequest(
        ...     duration_seconds=60,
        ...     pattern="error-heavy",
        ...     sources=["api-gateway"],
        ... )
    """

    duration_seconds: float = Field(..., description="File time span", gt=0)
    base_frequency: float = Field(10.0, description="Entries per second", gt=0)
    pattern: LogPattern = Field(LogPattern.NORMAL, description="Log pattern")
    error_rate: float = Field(0.1, description="Base error rate", ge=0, le=1)
    sources: List[str] = Field(default_factory=list, description="Log sources")
    source_count: int = Field(
        2, description="Sources drawn when none given", ge=1, le=len(DEFAULT_SOURCES)
    )
    include_stack_traces: bool = Field(True, description="Stack traces on errors")
    injection_frequency: float = Field(0.0, description="Problem injection intensity", ge=0, le=1)
    error_types: List[ErrorType] = Field(
        default_factory=lambda: list(ErrorType), description="Injected problem categories"
    )
    scenario_id: Optional[str] = Field(None, description="Owning scenario")
    max_entries_per_source: int = Field(100_000, description="Entry cap per file", gt=0)

    model_config = ConfigDict(allow_inf_nan=False)

    @model_validator(mode="after")
    def _check_injection(self) -> "LogGenerationRequest":
        if self.injection_frequency > 0 and not self.error_types:
            raise ValueError("error_types must not be empty when injection_frequency > 0")
        return self


class LogEntry(BaseModel):
    """One synthetic log line."""

    timestamp: datetime
    level: LogLevel
    message: str
    source: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    injected: bool = False
    error_type: Optional[ErrorType] = None
    scenario_id: Optional[str] = None


class LogFileMetadata(BaseModel):
    """Counts derived from a finished log file."""

    total_size: int = Field(0, ge=0, description="Sum of message lengths")
    line_count: int = Field(0, ge=0)
    error_count: int = Field(0, ge=0, description="ERROR and FATAL entries")
    warning_count: int = Field(0, ge=0)


class LogFile(BaseModel):
    """All entries generated for one source."""

    file_path: str
    source: str
    entries: List[LogEntry] = Field(default_factory=list)
    metadata: LogFileMetadata


class LogStatistics(BaseModel):
    """Entry counts per level across a set of log files."""

    debug_count: int = 0
    info_count: int = 0
    warn_count: int = 0
    error_count: int = 0
    fatal_count: int = 0

    @classmethod
    def from_files(cls, files: List[LogFile]) -> "LogStatistics":
        counts = {level: 0 for level in LogLevel}
        for log_file in files:
            for entry in log_file.entries:
                counts[entry.level] += 1
        return cls(**{f"{level.value.lower()}_count": n for level, n in counts.items()})


class LogGenerationResult(BaseModel):
    """Log files for every source plus aggregate statistics."""

    log_files: List[LogFile] = Field(default_factory=list)
    total_entries: int = 0
    statistics: LogStatistics = Field(default_factory=LogStatistics)


def as_log_file(payload: Any) -> Optional[LogFile]:
    """Coerce a step payload item into a LogFile, or None if it is not one."""
    if isinstance(payload, LogFile):
        return payload
    if isinstance(payload, dict) and {"file_path", "entries", "metadata"} <= payload.keys():
        return LogFile.model_validate(payload)
    return None


class LogGenerator:
    """
    Generate synthetic log files with a pattern-driven level mix.

    Example:
        >>> generator = LogGenerator(seed=7)
        >>> result = generator.generate(
        ...     LogGenerationRequest(duration_seconds=10, sources=["api-gateway"])
        ... )
        >>> result.log_files[0].source
        'api-gateway'
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
            config: Generator configuration (supplies the default seed)
            rng: Random source; takes precedence over ``seed``
            seed: Seed for a private random source (falls back to config.seed)
            logger: Logger to use (defaults to the module logger)
        """
        config = config or GeneratorConfig()
        if rng is None:
            rng = random.Random(seed if seed is not None else config.seed)
        self._rng = rng
        self._logger = logger or get_logger(__name__)

    def generate(
        self, request: LogGenerationRequest, start_time: Optional[datetime] = None
    ) -> LogGenerationResult:
        """
        Generate one log file per source.

        Args:
            request: Log generation request
            start_time: Timestamp of the first entry (defaults to now, UTC)

        Returns:
            LogGenerationResult with files in source order
        """
        start = start_time or datetime.now(timezone.utc)
        sources = list(request.sources) or self._rng.sample(DEFAULT_SOURCES, request.source_count)

        self._logger.info(
            "log_generation_started",
            pattern=request.pattern.value,
            sources=sources,
            duration_seconds=request.duration_seconds,
        )

        files = [self.generate_log_file(source, request, start) for source in sources]
        result = LogGenerationResult(
            log_files=files,
            total_entries=sum(f.metadata.line_count for f in files),
            statistics=LogStatistics.from_files(files),
        )

        self._logger.info(
            "log_generation_completed",
            pattern=request.pattern.value,
            total_entries=result.total_entries,
            error_count=result.statistics.error_count + result.statistics.fatal_count,
        )
        return result

    def generate_log_file(
        self,
        source: str,
        request: LogGenerationRequest,
        start_time: Optional[datetime] = None,
    ) -> LogFile:
        """Generate the entries for a single source."""
        start = start_time or datetime.now(timezone.utc)
        total_ms = request.duration_seconds * 1000
        interval_ms = 1000 / (request.base_frequency * RATE_FACTORS[request.pattern])

        entries: List[LogEntry] = []
        elapsed_ms = 0.0
        while elapsed_ms < total_ms and len(entries) < request.max_entries_per_source:
            index = len(entries)
            entries.append(
                self._entry(start + timedelta(milliseconds=elapsed_ms), source, request, index)
            )
            elapsed_ms += self._next_interval(
                interval_ms, request.pattern, index, elapsed_ms, total_ms
            )

        level_counts = {level: 0 for level in LogLevel}
        for entry in entries:
            level_counts[entry.level] += 1
        for level, count in level_counts.items():
            if count:
                increment_counter(
                    "log_entries_generated_total",
                    count,
                    labels={"pattern": request.pattern.value, "level": level.value},
                )

        return LogFile(
            file_path=f"/logs/{source}-{request.scenario_id or 'adhoc'}.log",
            source=source,
            entries=entries,
            metadata=LogFileMetadata(
                total_size=sum(len(entry.message) for entry in entries),
                line_count=len(entries),
                error_count=level_counts[LogLevel.ERROR] + level_counts[LogLevel.FATAL],
                warning_count=level_counts[LogLevel.WARN],
            ),
        )

    def _entry(
        self, timestamp: datetime, source: str, request: LogGenerationRequest, index: int
    ) -> LogEntry:
        rng = self._rng
        level = self._determine_level(request.error_rate, request.pattern, index)
        message = self._render_message(level, source)

        metadata: Dict[str, Any] = {
            "request_id": f"req-{_token(rng, 8)}",
            "session_id": f"sess-{_token(rng, 12)}",
            "user_id": _FILLERS["userId"](rng) if rng.random() < 0.7 else None,
            "ip": _FILLERS["ip"](rng),
            "user_agent": rng.choice(USER_AGENTS),
        }
        if level in (LogLevel.ERROR, LogLevel.FATAL) and request.include_stack_traces:
            metadata["stack_trace"] = rng.choice(STACK_TRACES)

        injected = rng.random() < request.injection_frequency * INJECTION_SCALE
        return LogEntry(
            timestamp=timestamp,
            level=level,
            message=message,
            source=source,
            metadata=metadata,
            injected=injected,
            error_type=rng.choice(request.error_types) if injected else None,
            scenario_id=request.scenario_id,
        )

    def _determine_level(self, error_rate: float, pattern: LogPattern, index: int) -> LogLevel:
        """Cumulative thresholds: FATAL below 0.1x the effective rate, ERROR 0.3x, WARN 0.6x."""
        if pattern is LogPattern.ERROR_HEAVY:
            error_rate *= 3
        elif pattern is LogPattern.BURST:
            error_rate *= 5 if (index // BURST_BLOCK) % 3 == 0 else 0.5
        elif pattern is LogPattern.SPARSE:
            error_rate *= 0.3
        error_rate = min(error_rate, 1.0)

        roll = self._rng.random()
        if roll < error_rate * 0.1:
            return LogLevel.FATAL
        if roll < error_rate * 0.3:
            return LogLevel.ERROR
        if roll < error_rate * 0.6:
            return LogLevel.WARN
        if roll < 0.8:
            return LogLevel.INFO
        return LogLevel.DEBUG

    def _render_message(self, level: LogLevel, source: str) -> str:
        template = self._rng.choice(MESSAGE_TEMPLATES[level])
        values: Dict[str, str] = {}
        for _, name, _, _ in _FORMATTER.parse(template):
            if not name or name in values:
                continue
            if name == "service":
                values[name] = source
            elif name == "component":
                values[name] = source.replace("-service", "")
            else:
                values[name] = _FILLERS[name](self._rng)
        return template.format_map(values)

    def _next_interval(
        self,
        interval_ms: float,
        pattern: LogPattern,
        index: int,
        elapsed_ms: float,
        total_ms: float,
    ) -> float:
        rng = self._rng
        if pattern is LogPattern.BURST:
            return interval_ms * (0.1 if index % BURST_BLOCK < BURST_LENGTH else 3)
        if pattern is LogPattern.ERROR_HEAVY:
            return interval_ms * (2 - elapsed_ms / total_ms)
        if pattern is LogPattern.SPARSE:
            return interval_ms * (1 + rng.random() * 3)
        if pattern is LogPattern.STRUCTURED:
            return interval_ms * (0.8 + rng.random() * 0.4)
        return interval_ms * (0.5 + rng.random())


__all__ = [
    "LogLevel",
    "LogPattern",
    "ErrorType",
    "DEFAULT_SOURCES",
    "LogGenerationRequest",
    "LogEntry",
    "LogFileMetadata",
    "LogFile",
    "LogStatistics",
    "LogGenerationResult",
    "LogGenerator",
    "as_log_file",
]
