"""Tests for the source map, the instrumentation cache and file probes."""

from collections.abc import Callable
from pathlib import Path

from tracecov.runtime.instrumentation import (
    FileProbe,
    InstrumentationCache,
    InstrumentedSource,
    SourceMap,
)
from tracecov.runtime.tracker import CoverageTracker


def make_map() -> SourceMap:
    source_map = SourceMap()
    source_map.add(1, 1, carries_text=False)
    source_map.add(2, 1, carries_text=True)
    source_map.add(3, 2, carries_text=False)
    source_map.add(4, 2, carries_text=True)
    return source_map


class TestSourceMap:
    def test_probe_lines_map_back_but_not_forward(self) -> None:
        source_map = make_map()
        assert source_map.original_line(3) == 2
        assert source_map.instrumented_line(2) == 4
        assert source_map.original_line(9) is None

    def test_traceback_lines_rewritten_for_own_file_only(self) -> None:
        # Given
        text = (
            'File "/src/app.py", line 4, in main\n'
            'File "/src/other.py", line 4, in helper\n'
            'File "/src/app.py", line 40, in main\n'
        )

        # When
        translated = make_map().translate_traceback(text, "/src/app.py")

        # Then
        assert translated.splitlines() == [
            'File "/src/app.py", line 2, in main',
            'File "/src/other.py", line 4, in helper',
            'File "/src/app.py", line 40, in main',
        ]


class TestInstrumentationCache:
    """LRU keyed by content hash."""

    @staticmethod
    def entry(content_hash: str) -> InstrumentedSource:
        return InstrumentedSource(content_hash, f"# {content_hash}\n", SourceMap())

    def test_given_hit_and_miss_then_counted(self) -> None:
        cache = InstrumentationCache()
        cache.put(self.entry("aaa"))

        assert cache.get("aaa") is not None
        assert cache.get("bbb") is None
        assert cache.stats() == {"entries": 1, "hits": 1, "misses": 1, "hit_ratio": 0.5}

    def test_given_full_cache_then_least_recent_evicted(self) -> None:
        # Given
        cache = InstrumentationCache(max_entries=2)
        cache.put(self.entry("a"))
        cache.put(self.entry("b"))
        cache.get("a")

        # When
        cache.put(self.entry("c"))

        # Then
        assert len(cache) == 2
        assert cache.get("b") is None
        assert cache.get("a") is not None

    def test_given_clear_then_empty_and_stats_zeroed(self) -> None:
        cache = InstrumentationCache()
        cache.put(self.entry("a"))
        cache.get("a")

        cache.clear()

        assert len(cache) == 0
        assert cache.stats()["hit_ratio"] == 0.0


class TestFileProbe:
    """Probes pass values through and never raise."""

    def test_given_idle_session_then_no_op(
        self, make_tracker: Callable[..., CoverageTracker], write_script: Callable[..., Path]
    ) -> None:
        # Given
        path = write_script("if a:\n    b = 1\n")
        tracker = make_tracker(instrumentation=True)
        key = tracker.resolve(str(path))
        assert key is not None
        probe = FileProbe(tracker, key)

        # When
        probe.line(1)
        outcome = probe.guard(0, [1], line=1)

        # Then
        assert outcome is True
        assert probe.called(0, "value") == "value"
        assert not tracker.store.get_line(key, 1).executed
        assert tracker.store.get_condition(key, 0).execution_count == 0

    def test_given_running_session_then_guard_records_outcome(
        self, make_tracker: Callable[..., CoverageTracker], write_script: Callable[..., Path]
    ) -> None:
        path = write_script("if a:\n    b = 1\n")
        tracker = make_tracker(instrumentation=True)
        key = tracker.resolve(str(path))
        assert key is not None
        probe = FileProbe(tracker, key)
        tracker.start()

        probe.enter(1)
        probe.line(1)
        assert probe.guard(0, 0) is False
        assert probe.cond(0, "x") is True

        condition = tracker.store.get_condition(key, 0)
        assert (condition.true_outcome_executed, condition.false_outcome_executed) == (True, True)
        # the guard was false: the entry still waits for a body line
        assert tracker.store.pending_entries(key) == {1: 1}

    def test_given_unknown_file_then_error_counted(
        self, make_tracker: Callable[..., CoverageTracker], tmp_path: Path
    ) -> None:
        tracker = make_tracker(instrumentation=True)
        probe = FileProbe(tracker, str(tmp_path / "never.py"))
        tracker.start()

        probe.line(1)
        probe.call(0)

        assert tracker.performance.errors == 2
