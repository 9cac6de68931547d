"""Config module exports."""

from tracecov.config.loader import load_config
from tracecov.config.models import (
    AnalysisConfig,
    LoggingConfig,
    LogOutputConfig,
    TracecovConfig,
    TrackingConfig,
)

__all__ = [
    "load_config",
    "AnalysisConfig",
    "LoggingConfig",
    "LogOutputConfig",
    "TracecovConfig",
    "TrackingConfig",
]
