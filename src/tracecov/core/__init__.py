"""Core module exports."""

from tracecov.core.errors import (
    ConfigError,
    ConsistencyError,
    ErrorCode,
    ParseError,
    SourceReadError,
    TracecovError,
    ValidationError,
)
from tracecov.core.logging import (
    clear_session_id,
    configure_logging,
    get_logger,
    get_session_id,
    set_session_id,
)

__all__ = [
    # Errors
    "ConfigError",
    "ConsistencyError",
    "ErrorCode",
    "ParseError",
    "SourceReadError",
    "TracecovError",
    "ValidationError",
    # Logging
    "clear_session_id",
    "configure_logging",
    "get_logger",
    "get_session_id",
    "set_session_id",
]
