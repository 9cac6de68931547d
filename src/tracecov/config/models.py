"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (TRACECOV__SECTION__KEY)
3. Project YAML (.tracecov/config.yaml)
4. Global YAML (~/.config/tracecov/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    TRACECOV__<SECTION>__<KEY>=<VALUE>

Examples:
    TRACECOV__LOGGING__LEVEL=DEBUG
    TRACECOV__TRACKING__USE_INSTRUMENTATION=true
    TRACECOV__ANALYSIS__MAX_ANALYSIS_NODES=50000
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from tracecov.config.constants import (
    DEFAULT_ANALYSIS_CACHE_SIZE,
    DEFAULT_MAX_ANALYSIS_NODES,
    DEFAULT_MAX_ANALYSIS_TIME_MS,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        TRACECOV__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. DEBUG logs every skipped hook event and is slow.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class AnalysisConfig(BaseModel):
    """Static analyzer configuration.

    Env vars:
        TRACECOV__ANALYSIS__USE_STATIC_ANALYSIS: AST classification on/off
        TRACECOV__ANALYSIS__MAX_ANALYSIS_NODES: AST node budget per file
        TRACECOV__ANALYSIS__MAX_ANALYSIS_TIME_MS: Wall-clock budget per file
    """

    use_static_analysis: bool = Field(
        default=True,
        description="Classify lines from the AST. When false every file uses the "
        "heuristic line scanner (no blocks, conditions or functions).",
    )
    max_analysis_nodes: int = Field(
        default=DEFAULT_MAX_ANALYSIS_NODES,
        description="Abort AST analysis of a file above this many nodes and fall back "
        "to heuristic classification.",
    )
    max_analysis_time_ms: int = Field(
        default=DEFAULT_MAX_ANALYSIS_TIME_MS,
        description="Abort AST analysis of a file after this many milliseconds.",
    )
    cache_size: int = Field(
        default=DEFAULT_ANALYSIS_CACHE_SIZE,
        description="Code maps kept in memory, keyed by content hash.",
    )

    @field_validator("max_analysis_nodes", "max_analysis_time_ms", "cache_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Must be positive, got {v}")
        return v


class TrackingConfig(BaseModel):
    """Runtime tracking configuration.

    Env vars:
        TRACECOV__TRACKING__USE_INSTRUMENTATION: Instrument sources instead of sys.settrace
        TRACECOV__TRACKING__TRACK_BLOCKS: Record block execution
        TRACECOV__TRACKING__TRACK_CONDITIONS: Record condition outcomes
    """

    use_instrumentation: bool = Field(
        default=False,
        description="Rewrite sources at import time instead of hooking the interpreter. "
        "TRADEOFF: slower first import and cached rewritten sources, much lower "
        "per-line overhead.",
    )
    track_blocks: bool = Field(default=True, description="Record block execution.")
    track_conditions: bool = Field(default=True, description="Record condition outcomes.")
    include: list[str] = Field(
        default_factory=list,
        description="Glob patterns of files to track. Empty means every file not excluded.",
    )
    exclude: list[str] = Field(
        default_factory=lambda: ["*/site-packages/*", "*/dist-packages/*", "*/tracecov/*"],
        description="Glob patterns of files never tracked.",
    )
    exclude_tests: bool = Field(
        default=True,
        description="Skip test modules (test_*.py, *_test.py, conftest.py, files under tests/).",
    )
    trace_threads: bool = Field(
        default=False,
        description="Also install the debug hook on threads started during the session. "
        "RISK: the store is not locked; only enable for threads that do not overlap.",
    )


class TracecovConfig(BaseModel):
    """Root configuration for tracecov.

    All settings can be configured via:
    1. Environment variables: TRACECOV__SECTION__KEY
    2. YAML config files (project or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
