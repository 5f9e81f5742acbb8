"""
Configuration loading for synthgen.

Configuration values are resolved using the following precedence:

1. Environment variables (e.g., SYNTHGEN_RETRY_BASE_DELAY)
2. The TOML file passed to `load_config`, named by SYNTHGEN_CONFIG_FILE,
   or `synthgen.toml` if present in the working directory
3. Built-in defaults

Example `synthgen.toml`::

    [executor]
    retry_base_delay_seconds = 0.5
    default_timeout_ms = 10000

    [generator]
    seed = 42

    [logging]
    level = "DEBUG"
    format = "json"
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "ConfigError",
    "ExecutorConfig",
    "GeneratorConfig",
    "LoggingConfig",
    "SynthgenConfig",
    "load_config",
    "configure",
]


DEFAULT_CONFIG_FILE = Path("synthgen.toml")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or validated."""


class ExecutorConfig(BaseModel):
    """Scenario executor configuration."""

    retry_base_delay_seconds: float = Field(
        1.0,
        description="Backoff unit; attempt N waits N times this value",
        ge=0.0,
    )
    default_timeout_ms: int = Field(
        30_000, description="Timeout applied to steps that do not set one", gt=0
    )
    default_max_retries: int = Field(
        2, description="Retries applied to steps that do not set one", ge=0
    )
    bottleneck_factor: float = Field(
        2.0, description="Multiple of the mean step duration marking a bottleneck", gt=1.0
    )
    max_bottlenecks: int = Field(3, description="Bottleneck steps reported", ge=0)


class GeneratorConfig(BaseModel):
    """Time-series pattern generator configuration."""

    seed: Optional[int] = Field(None, description="Seed for reproducible streams")
    spike_decay_points: int = Field(5, description="Points a spike takes to decay", ge=1)
    fragmentation_cycle: int = Field(30, description="Points per fragmentation cycle", ge=2)
    congestion_cycle: int = Field(60, description="Points per daily-traffic cycle", ge=2)
    congestion_probability: float = Field(
        0.05, description="Per-point chance of a congestion surge", ge=0.0, le=1.0
    )
    congestion_length: int = Field(10, description="Points a congestion surge lasts", ge=1)
    leak_gc_interval: int = Field(100, description="Points between simulated GC events", ge=2)


class LoggingConfig(BaseModel):
    """Logging output configuration."""

    level: str = Field("INFO", description="Log level")
    format: str = Field("console", description="Renderer: json or console")
    log_file: Optional[Path] = Field(None, description="Optional rotating log file")

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"json", "console"}:
            raise ValueError(f"Unknown log format: {value}")
        return normalized

    @field_validator("log_file", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Optional[Path]:
        if value is None or isinstance(value, Path):
            return value
        return Path(value)


class SynthgenConfig(BaseModel):
    """Top-level configuration object shared across subsystems."""

    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# (section, field) -> environment variable
_ENV_OVERRIDES: Dict[tuple[str, str], str] = {
    ("executor", "retry_base_delay_seconds"): "SYNTHGEN_RETRY_BASE_DELAY",
    ("executor", "default_timeout_ms"): "SYNTHGEN_DEFAULT_TIMEOUT_MS",
    ("executor", "default_max_retries"): "SYNTHGEN_DEFAULT_MAX_RETRIES",
    ("generator", "seed"): "SYNTHGEN_SEED",
    ("logging", "level"): "SYNTHGEN_LOG_LEVEL",
    ("logging", "format"): "SYNTHGEN_LOG_FORMAT",
    ("logging", "log_file"): "SYNTHGEN_LOG_FILE",
}


def load_config(config_path: Optional[Path | str] = None) -> SynthgenConfig:
    """
    Load synthgen configuration from file/environment/defaults.

    Args:
        config_path: Optional explicit path to a `synthgen.toml` file.

    Returns:
        SynthgenConfig populated with the resolved values.

    Raises:
        ConfigError: if the config file is missing, unparsable or invalid.
    """
    raw_data = _load_toml_data(config_path)

    sections: Dict[str, Dict[str, Any]] = {
        name: dict(raw_data.get(name) or {})
        for name in ("executor", "generator", "logging")
    }

    for (section, key), env_var in _ENV_OVERRIDES.items():
        env_value = os.getenv(env_var)
        if env_value is not None:
            sections[section][key] = env_value

    try:
        return SynthgenConfig(
            executor=ExecutorConfig(**sections["executor"]),
            generator=GeneratorConfig(**sections["generator"]),
            logging=LoggingConfig(**sections["logging"]),
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid synthgen configuration: {exc}") from exc


def _load_toml_data(config_path: Optional[Path | str]) -> Dict[str, Any]:
    """Load data from a TOML file if one can be resolved."""

    resolved = _resolve_config_path(config_path)
    if resolved is None:
        return {}

    if not resolved.exists():
        raise ConfigError(f"Configuration file not found: {resolved}")

    try:
        with resolved.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Cannot parse {resolved}: {exc}") from exc


def _resolve_config_path(config_path: Optional[Path | str]) -> Optional[Path]:
    """Resolve configuration path with environment fallback."""

    if config_path:
        return Path(config_path)

    env_path = os.getenv("SYNTHGEN_CONFIG_FILE")
    if env_path:
        return Path(env_path)

    return DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.exists() else None


def configure(config_path: Optional[Path | str] = None) -> SynthgenConfig:
    """
    Load configuration and apply its logging section.

    Returns:
        The loaded SynthgenConfig, for building executors and generators.
    """
    from synthgen.observability.logging import configure_logging

    config = load_config(config_path)
    configure_logging(
        level=config.logging.level,
        format=config.logging.format,
        log_file=config.logging.log_file,
    )
    return config
