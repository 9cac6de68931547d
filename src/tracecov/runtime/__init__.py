"""Runtime tracking: the coverage session and its two collectors."""

from tracecov.runtime.assertions import covers, mark_caller_covered
from tracecov.runtime.debug_hook import DebugHookCollector
from tracecov.runtime.filters import is_stdlib, is_test_file, matches_any, should_track
from tracecov.runtime.sink import ExecutionEventSink
from tracecov.runtime.tracker import CoverageTracker, PerformanceCounters, SessionState

__all__ = [
    # Session
    "CoverageTracker",
    "ExecutionEventSink",
    "PerformanceCounters",
    "SessionState",
    # Collectors
    "DebugHookCollector",
    # Filters
    "is_stdlib",
    "is_test_file",
    "matches_any",
    "should_track",
    # Assertions
    "covers",
    "mark_caller_covered",
]
