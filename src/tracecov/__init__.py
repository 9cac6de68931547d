"""tracecov: line, block, condition and function coverage for Python.

Usage::

    from tracecov import CoverageTracker, load_config, save_snapshot

    tracker = CoverageTracker(load_config())
    tracker.start()
    tracker.run_path("script.py")
    save_snapshot(tracker.stop(), "coverage.json")
"""

from tracecov.analysis import StaticAnalyzer
from tracecov.config import TracecovConfig, load_config
from tracecov.core import TracecovError, configure_logging
from tracecov.runtime import CoverageTracker, covers
from tracecov.snapshot import (
    CoverageSnapshot,
    build_snapshot,
    load_snapshot,
    merge,
    merge_snapshots,
    save_snapshot,
)
from tracecov.store import CoverageStore

__version__ = "0.1.0"

__all__ = [
    "CoverageSnapshot",
    "CoverageStore",
    "CoverageTracker",
    "StaticAnalyzer",
    "TracecovConfig",
    "TracecovError",
    "__version__",
    "build_snapshot",
    "configure_logging",
    "covers",
    "load_config",
    "load_snapshot",
    "merge",
    "merge_snapshots",
    "save_snapshot",
]
