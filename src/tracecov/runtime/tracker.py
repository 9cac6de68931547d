"""Coverage session: the shared sink behind both collectors.

``CoverageTracker`` owns one ``CoverageStore`` and turns execution signals
into store mutations. Collectors call the ``on_*`` sink methods with
already-resolved keys; the test harness uses the ``track_*`` and
``mark_covered`` methods, which take any path spelling and raise on bad
input.

Usage::

    tracker = CoverageTracker(load_config())
    tracker.start()
    try:
        run_tests()
    finally:
        snapshot = tracker.stop()
"""

from __future__ import annotations

import os
import runpy
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from tracecov.analysis.analyzer import StaticAnalyzer
from tracecov.analysis.models import BlockKind, CodeMap, ConditionInfo
from tracecov.config.constants import ROOT_BLOCK_ID
from tracecov.config.models import TracecovConfig
from tracecov.core.errors import SourceReadError, ValidationError
from tracecov.core.logging import clear_session_id, get_logger, set_session_id
from tracecov.reconcile.patchup import ReconciliationReport, reconcile
from tracecov.runtime.filters import should_track
from tracecov.snapshot.export import build_snapshot
from tracecov.snapshot.models import CoverageSnapshot
from tracecov.store.paths import normalize_path
from tracecov.store.store import CoverageStore

if TYPE_CHECKING:
    from tracecov.runtime.instrumentation.cache import InstrumentationCache

log = get_logger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(slots=True)
class PerformanceCounters:
    """Collector overhead for one session."""

    calls: int = 0
    total_seconds: float = 0.0
    errors: int = 0
    spurious_events: int = 0

    def reset(self) -> None:
        self.calls = 0
        self.total_seconds = 0.0
        self.errors = 0
        self.spurious_events = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "calls": self.calls,
            "total_seconds": round(self.total_seconds, 6),
            "errors": self.errors,
            "spurious_events": self.spurious_events,
        }


_UNRESOLVED = object()


class CoverageTracker:
    """One coverage session over an explicit store.

    Not a singleton: any number of trackers may exist, but only one
    collector can own ``sys.settrace`` at a time.
    """

    def __init__(
        self,
        config: TracecovConfig | None = None,
        store: CoverageStore | None = None,
    ) -> None:
        self.config = config or TracecovConfig()
        self.store = store or CoverageStore(StaticAnalyzer(self.config.analysis))
        self.performance = PerformanceCounters()
        self.state = SessionState.IDLE
        self.session_id: str | None = None
        self.report: ReconciliationReport | None = None
        self._collector: Any = None
        self._resolved: dict[str, Any] = {}
        self._guards: dict[str, dict[int, tuple[ConditionInfo, ...]]] = {}
        self._instrumentation_cache: InstrumentationCache | None = None

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.state is SessionState.RUNNING

    @property
    def track_blocks(self) -> bool:
        return self.config.tracking.track_blocks

    @property
    def track_conditions(self) -> bool:
        return self.config.tracking.track_conditions

    @property
    def instrumentation_cache(self) -> InstrumentationCache:
        from tracecov.runtime.instrumentation.cache import InstrumentationCache

        if self._instrumentation_cache is None:
            self._instrumentation_cache = InstrumentationCache()
        return self._instrumentation_cache

    def start(self) -> None:
        """Install the configured collector and begin recording.

        Raises:
            ValidationError: The session is already running or has stopped
                without a ``reset()``.
        """
        if self.state is not SessionState.IDLE:
            raise ValidationError.session_state("start", self.state.value)

        self.session_id = set_session_id()
        if self.config.tracking.use_instrumentation:
            from tracecov.runtime.instrumentation.loader import InstrumentationCollector

            self._collector = InstrumentationCollector(self)
        else:
            from tracecov.runtime.debug_hook import DebugHookCollector

            self._collector = DebugHookCollector(self)
        self.state = SessionState.RUNNING
        self._collector.install()
        log.info("session_started", collector=self._collector.name)

    def stop(self) -> CoverageSnapshot:
        """Stop recording, reconcile, and return the session snapshot.

        Raises:
            ValidationError: No session is running.
        """
        if self.state is not SessionState.RUNNING:
            raise ValidationError.session_state("stop", self.state.value)
        try:
            self._collector.uninstall()
        finally:
            self._collector = None
            self.state = SessionState.STOPPED

        self.report = reconcile(self.store)
        self.store.freeze()
        snapshot = build_snapshot(self.store)
        log.info(
            "session_stopped",
            files=len(snapshot.files),
            untracked=len(self.store.untracked),
            **self.performance.to_dict(),
        )
        clear_session_id()
        return snapshot

    def reset(self, discard_structure: bool = False) -> None:
        """Forget every runtime observation and return to idle.

        A running collector is uninstalled first. With ``discard_structure``
        the tracked files and cached analyses are dropped too.
        """
        if self._collector is not None:
            self._collector.uninstall()
            self._collector = None
        self.store.reset(discard_structure=discard_structure)
        self.performance.reset()
        self._resolved.clear()
        self._guards.clear()
        if discard_structure and self._instrumentation_cache is not None:
            self._instrumentation_cache.clear()
        self.report = None
        self.state = SessionState.IDLE
        if self.session_id is not None:
            clear_session_id()
            self.session_id = None

    def __enter__(self) -> CoverageTracker:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.running:
            self.stop()

    def run_path(self, path: str | os.PathLike[str], run_name: str = "__main__") -> dict[str, Any]:
        """Execute a script under the running session and return its globals."""
        if not self.running:
            raise ValidationError.session_state("run a script", self.state.value)
        if self.config.tracking.use_instrumentation:
            from tracecov.runtime.instrumentation.loader import run_path

            return run_path(self, path, run_name=run_name)
        return runpy.run_path(os.fspath(path), run_name=run_name)

    # ------------------------------------------------------------------
    # File resolution
    # ------------------------------------------------------------------

    def should_track(self, path: str | os.PathLike[str]) -> bool:
        raw = os.fspath(path)
        if not raw or raw.startswith("<"):
            return False
        return should_track(normalize_path(raw), self.config.tracking)

    def resolve(self, filename: str) -> str | None:
        """Key for a code object's filename, or None when it is not tracked.

        The first sight of a tracked file analyses it; a file that cannot
        be read is recorded as untracked. Results are cached per spelling.
        """
        cached = self._resolved.get(filename, _UNRESOLVED)
        if cached is not _UNRESOLVED:
            return cached  # type: ignore[no-any-return]

        key: str | None = None
        if filename and not filename.startswith("<"):
            candidate = normalize_path(filename)
            if should_track(candidate, self.config.tracking) and self._ensure_file(candidate):
                key = candidate
        self._resolved[filename] = key
        return key

    def _ensure_file(self, key: str) -> bool:
        store = self.store
        if store.has_file(key):
            return True
        if store.is_untracked(key):
            return False
        try:
            store.initialize_file(key)
        except SourceReadError as e:
            store.mark_untracked(key, e.message)
            log.warning("file_untracked", path=key, reason=e.details.get("reason"))
            return False
        return True

    def _require(self, path: str | os.PathLike[str]) -> str:
        key = normalize_path(path)
        store = self.store
        if not store.has_file(key):
            try:
                store.initialize_file(key)
            except SourceReadError as e:
                store.mark_untracked(key, e.message)
                raise
        return key

    def code_map(self, key: str) -> CodeMap:
        return self.store.get_file(key).code_map

    def guards_by_header(self, key: str) -> dict[int, tuple[ConditionInfo, ...]]:
        """Top-level guards whose outcome the next executed line reveals.

        ``case`` guards and guards whose body shares the header line are
        left out: the line after them says nothing about the outcome.
        """
        index = self._guards.get(key)
        if index is None:
            code_map = self.code_map(key)
            grouped: dict[int, list[ConditionInfo]] = {}
            for condition in code_map.conditions:
                if not condition.is_top_level or condition.true_range is None:
                    continue
                if condition.true_range[0] <= condition.header_line:
                    continue
                if code_map.block(condition.block_id).kind is BlockKind.CASE:
                    continue
                grouped.setdefault(condition.header_line, []).append(condition)
            index = {line: tuple(conds) for line, conds in grouped.items()}
            self._guards[key] = index
        return index

    # ------------------------------------------------------------------
    # ExecutionEventSink
    # ------------------------------------------------------------------

    def on_line(self, key: str, line: int) -> None:
        store = self.store
        if store.set_line_executed(key, line) and self.track_blocks:
            store.propagate_to_blocks(key, line)

    def on_call(self, key: str, function_id: int) -> None:
        self.store.set_function_executed(key, function_id)

    def on_return(self, key: str, function_id: int) -> None:
        # Function state has no exit-side counters.
        return None

    def on_condition(self, key: str, condition_id: int, outcome: bool | None) -> None:
        if not self.track_conditions:
            return
        if outcome is None:
            self.store.mark_condition_executed(key, condition_id)
        else:
            self.store.set_condition_outcome(key, condition_id, outcome)

    def on_block_entry(self, key: str, block_id: int) -> None:
        """A block was entered and one of its evidence lines has already run."""
        if self.track_blocks:
            self.store.set_block_executed(key, block_id, count=1)

    def defer_block_entry(self, key: str, block_id: int) -> None:
        """A block was entered; count it once one of its evidence lines runs."""
        if self.track_blocks:
            self.store.defer_block_entry(key, block_id)

    # ------------------------------------------------------------------
    # Harness API
    # ------------------------------------------------------------------

    def track_line(self, path: str | os.PathLike[str], line: int) -> bool:
        """Record one execution of ``line``.

        Returns False when the line is not executable.

        Raises:
            ValidationError: Empty path or line out of range.
            SourceReadError: The file cannot be read (it is then untracked).
        """
        key = self._require(path)
        store = self.store
        if not store.set_line_executed(key, line):
            return False
        if self.track_blocks:
            store.propagate_to_blocks(key, line)
        return True

    def track_block(self, path: str | os.PathLike[str], block_id: int) -> None:
        """Record one entry into a block.

        Counted right away when a line proving the block ran has executed,
        otherwise as soon as one does.
        """
        key = self._require(path)
        store = self.store
        if store.has_block_evidence(key, block_id):
            store.set_block_executed(key, block_id, count=1)
        else:
            store.defer_block_entry(key, block_id)

    def track_function(self, path: str | os.PathLike[str], function_id: int) -> None:
        self.store.set_function_executed(self._require(path), function_id)

    def track_condition(
        self, path: str | os.PathLike[str], condition_id: int, outcome: bool | None
    ) -> None:
        key = self._require(path)
        if outcome is None:
            self.store.mark_condition_executed(key, condition_id)
        else:
            self.store.set_condition_outcome(key, condition_id, outcome)

    def mark_covered(self, path: str | os.PathLike[str], line: int) -> bool:
        """Record that an assertion validated ``line``.

        A line that never ran is marked executed first: an assertion that
        proves behaviour at a line proves the line ran. Continuation lines
        resolve to their statement. A forced line inside a function body also
        marks that function executed. The blocks that hold the line and the
        function around it become covered when they executed.

        Returns False when the line (or its statement) is not executable.
        """
        key = self._require(path)
        store = self.store
        code_map = self.code_map(key)
        store.get_line(key, line)  # range check

        info = code_map.line(line)
        target = line if info.executable else info.statement_line
        if not code_map.line(target).executable:
            log.debug("mark_covered_ignored", path=key, line=line)
            return False

        function = code_map.function_at(target)
        if not store.get_line(key, target).executed:
            if not store.set_line_executed(key, target):
                return False
            store.propagate_to_blocks(key, target)
            # a forced body line implies one call of its function
            if (
                function is not None
                and function.body_block_id is not None
                and store.get_block(key, function.body_block_id).executed
                and not store.get_function(key, function.function_id).executed
            ):
                store.set_function_executed(key, function.function_id)
        if not store.set_line_covered(key, target):
            return False

        for block_id in (ROOT_BLOCK_ID, *code_map.line(target).block_ids):
            store.set_block_covered(key, block_id)
        if function is not None:
            store.set_function_covered(key, function.function_id)
        return True
