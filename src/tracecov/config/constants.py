"""Configuration constants.

This module contains truly constant values that should NOT be user-configurable.
These are format versions, reserved identifiers and implementation details.

For configurable values, see models.py (AnalysisConfig, TrackingConfig).
"""

# =============================================================================
# Export format
# =============================================================================

SNAPSHOT_VERSION = "1.0"
"""Version tag written into every exported snapshot."""

# =============================================================================
# Structural identifiers
# =============================================================================

ROOT_BLOCK_ID = 0
"""Id of the per-file root sentinel block. Real blocks start at 1."""

ANONYMOUS_FUNCTION_FORMAT = "<anonymous:{line}>"
"""Synthetic name for functions without a usable name."""

# =============================================================================
# Instrumentation
# =============================================================================

PROBE_GLOBAL = "__tracecov__"
"""Module global through which instrumented code reaches its probe."""

# =============================================================================
# Analysis defaults
# =============================================================================

DEFAULT_MAX_ANALYSIS_NODES = 200_000
"""Default AST node budget per file."""

DEFAULT_MAX_ANALYSIS_TIME_MS = 2_000
"""Default wall-clock analysis budget per file."""

DEFAULT_ANALYSIS_CACHE_SIZE = 512
"""Default number of code maps retained by the analyzer cache."""

TIME_CHECK_INTERVAL = 1_000
"""Nodes visited between wall-clock budget checks."""

SOURCE_CHARS_PER_NODE = 64
"""Source characters allowed per budgeted node; longer files are not parsed at all."""
