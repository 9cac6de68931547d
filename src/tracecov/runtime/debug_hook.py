"""Debug-hook collector: ``sys.settrace`` driving the tracker.

The global trace function only sees ``call`` events. For a frame in a
tracked file it records the function call and hands back a per-frame
``_FrameTracer`` that receives the frame's ``line``, ``return`` and
``exception`` events.

Per frame the tracer keeps just enough state to derive what the
interpreter does not report directly:

- **Blocks.** A block is entered when execution arrives at one of its
  lines from outside its range. The entry is counted on the first
  evidence line that follows (see ``block_evidence``).
- **Guards.** After a header line with a top-level guard runs, the next
  line in the same frame tells which way the guard went: inside the
  guarded body means true, anywhere else (or returning) means false.
  Component outcomes are invisible to a line hook and are not recorded.

Line events for non-executable lines are redirected to the statement
they continue, or dropped as spurious. A line that both continues a
header and starts a clause body belongs to the header until the
instruction column reaches the body; the tracer switches the frame to
opcode events to see that happen.
"""

from __future__ import annotations

import sys
import threading
import time
from types import CodeType, FrameType
from typing import TYPE_CHECKING, Any

from tracecov.analysis.models import CodeMap, ConditionInfo
from tracecov.core.logging import get_logger

if TYPE_CHECKING:
    from tracecov.runtime.tracker import CoverageTracker

log = get_logger(__name__)

# Errors logged at warning level before the rest drop to debug
_LOUD_ERRORS = 10

# Code objects whose lines belong to an enclosing frame's blocks
_INLINE_CODE_NAMES = frozenset(
    ("<lambda>", "<listcomp>", "<setcomp>", "<dictcomp>", "<genexpr>")
)

# (line, end_line, column, end_column) from ``co_positions``
_Position = tuple[int | None, int | None, int | None, int | None]


def match_function(code_map: CodeMap, code: CodeType) -> int | None:
    """Function id for a code object, matched on first line and name.

    Several lambdas starting on one line all resolve to the first of them.
    """
    name = code.co_name
    for function_id in code_map.functions_for_code(code.co_firstlineno):
        function = code_map.function(function_id)
        if function.is_lambda:
            if name == "<lambda>":
                return function_id
        elif function.name.rpartition(".")[2] == name:
            return function_id
    return None


class _FrameTracer:
    """Local trace function for one frame."""

    __slots__ = (
        "collector",
        "key",
        "code_map",
        "guards",
        "first_line",
        "blocks_enabled",
        "last_target",
        "last_event",
        "awaiting",
        "pending_guards",
        "watching",
    )

    def __init__(
        self,
        collector: DebugHookCollector,
        key: str,
        code_map: CodeMap,
        guards: dict[int, tuple[ConditionInfo, ...]],
        code: CodeType,
    ) -> None:
        self.collector = collector
        self.key = key
        self.code_map = code_map
        self.guards = guards
        self.first_line = code.co_firstlineno
        self.blocks_enabled = code.co_name not in _INLINE_CODE_NAMES
        self.last_target: int | None = None
        self.last_event: int | None = None
        self.awaiting: set[int] = set()
        self.pending_guards: tuple[ConditionInfo, ...] = ()
        # (line, column) of a statement sharing its line with a header still
        # being evaluated; opcode events run until execution reaches it
        self.watching: tuple[int, int] | None = None

    def __call__(self, frame: FrameType, event: str, arg: Any) -> _FrameTracer:
        collector = self.collector
        if collector._processing:
            return self
        collector._processing = True
        started = time.perf_counter()
        try:
            if event == "line":
                self._line(frame.f_lineno, frame)
            elif event == "opcode":
                self._opcode(frame)
            elif event == "return":
                self._stop_watching(frame)
                self._resolve_guards(None)
            elif event == "exception":
                # The guard never finished evaluating
                self._stop_watching(frame)
                self.pending_guards = ()
        except Exception as e:
            collector.record_error(e, self.key, frame.f_lineno)
        finally:
            performance = collector.performance
            performance.calls += 1
            performance.total_seconds += time.perf_counter() - started
            collector._processing = False
        return self

    def _line(self, lineno: int, frame: FrameType) -> None:
        if self.watching is not None and self.watching[0] != lineno:
            self._stop_watching(frame)
        code_map = self.code_map
        if not 1 <= lineno <= code_map.line_count:
            self.collector.performance.spurious_events += 1
            return
        info = code_map.lines[lineno - 1]
        target = lineno
        if not info.executable:
            target = info.statement_line
            if target == lineno or not code_map.lines[target - 1].executable:
                self.collector.performance.spurious_events += 1
                return
        elif info.joined_to is not None:
            line, column = self.collector.position(frame)
            if line == lineno and column is not None and column < info.start_col:
                # Still evaluating the header this line continues
                target = info.joined_to
                self.watching = (lineno, info.start_col)
                frame.f_trace_opcodes = True
            else:
                self._stop_watching(frame)

        # Continuation lines and re-reports of the same statement are one execution
        if target == self.last_target and (lineno != target or self.last_event != target):
            self.last_event = lineno
            return
        previous = self.last_target
        self.last_target = target
        self.last_event = lineno

        tracker = self.collector.tracker
        if self.pending_guards:
            self._resolve_guards(target)
        tracker.on_line(self.key, target)
        if self.blocks_enabled and tracker.track_blocks:
            self._enter_blocks(target, previous)
        guards = self.guards.get(target)
        if guards and tracker.track_conditions:
            self.pending_guards = guards

    def _opcode(self, frame: FrameType) -> None:
        watching = self.watching
        if watching is None:
            frame.f_trace_opcodes = False
            return
        watched, start_col = watching
        line, column = self.collector.position(frame)
        if line != watched:
            self._stop_watching(frame)
        elif column is not None and column >= start_col:
            # The statement sharing the header line starts running
            self._stop_watching(frame)
            self._line(watched, frame)

    def _stop_watching(self, frame: FrameType) -> None:
        if self.watching is not None:
            self.watching = None
            frame.f_trace_opcodes = False

    def _enter_blocks(self, target: int, previous: int | None) -> None:
        blocks = self.code_map.blocks
        awaiting = self.awaiting
        tracker = self.collector.tracker
        for block_id in self.code_map.lines[target - 1].block_ids:
            block = blocks[block_id]
            if previous is None:
                entered = block.start_line >= self.first_line
            else:
                entered = not block.contains_line(previous)
            if entered:
                awaiting.add(block_id)
            if block_id in awaiting and block.is_evidence(target):
                awaiting.discard(block_id)
                tracker.on_block_entry(self.key, block_id)
        if awaiting:
            self.awaiting = {b for b in awaiting if blocks[b].contains_line(target)}

    def _resolve_guards(self, target: int | None) -> None:
        tracker = self.collector.tracker
        for condition in self.pending_guards:
            assert condition.true_range is not None
            first, last = condition.true_range
            outcome = target is not None and first <= target <= last
            tracker.on_condition(self.key, condition.condition_id, outcome)
        self.pending_guards = ()


class DebugHookCollector:
    """Bridges interpreter trace events to a ``CoverageTracker``."""

    name = "debug_hook"

    def __init__(self, tracker: CoverageTracker) -> None:
        self.tracker = tracker
        self.performance = tracker.performance
        self._processing = False
        self._installed = False
        self._previous: Any = None
        self._maps: dict[str, CodeMap] = {}
        self._positions: dict[CodeType, list[_Position]] = {}

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        if self._installed:
            return
        self._previous = sys.gettrace()
        if self._previous is not None:
            log.warning("trace_function_replaced", previous=repr(self._previous))
        sys.settrace(self._global_trace)
        if self.tracker.config.tracking.trace_threads:
            threading.settrace(self._global_trace)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        sys.settrace(self._previous)
        if self.tracker.config.tracking.trace_threads:
            threading.settrace(None)  # type: ignore[arg-type]
        self._previous = None
        self._installed = False
        self._maps.clear()
        self._positions.clear()

    def position(self, frame: FrameType) -> tuple[int | None, int | None]:
        """Line and UTF-8 column of the instruction ``frame`` is about to run."""
        code = frame.f_code
        positions = self._positions.get(code)
        if positions is None:
            positions = self._positions[code] = list(code.co_positions())
        index = frame.f_lasti // 2
        if 0 <= index < len(positions):
            line, _end_line, column, _end_column = positions[index]
            return line, column
        return None, None

    def record_error(self, error: Exception, path: str | None, line: int | None) -> None:
        """Count a failure inside the hook; the traced program never sees it."""
        performance = self.performance
        performance.errors += 1
        if performance.errors <= _LOUD_ERRORS:
            log.warning("hook_error", path=path, line=line, error=repr(error))
        else:
            log.debug("hook_error", path=path, line=line, error=repr(error))

    def _global_trace(self, frame: FrameType, event: str, arg: Any) -> _FrameTracer | None:
        if event != "call" or self._processing:
            return None
        existing = frame.f_trace
        if isinstance(existing, _FrameTracer):
            # Generator or coroutine resuming: same frame, same state
            return existing

        self._processing = True
        started = time.perf_counter()
        code = frame.f_code
        key: str | None = None
        try:
            tracker = self.tracker
            key = tracker.resolve(code.co_filename)
            if key is None:
                return None
            code_map = self._maps.get(key)
            if code_map is None:
                code_map = self._maps[key] = tracker.code_map(key)
            if code.co_name != "<module>":
                function_id = match_function(code_map, code)
                if function_id is not None:
                    tracker.on_call(key, function_id)
            return _FrameTracer(self, key, code_map, tracker.guards_by_header(key), code)
        except Exception as e:
            self.record_error(e, key or code.co_filename, frame.f_lineno)
            return None
        finally:
            self.performance.calls += 1
            self.performance.total_seconds += time.perf_counter() - started
            self._processing = False
