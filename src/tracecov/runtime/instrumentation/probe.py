"""The object instrumented code calls.

Each loaded module gets its own ``FileProbe`` bound to the tracker and the
file's key, injected as the module global ``__tracecov__``. Instrumented
text therefore never names a path and can be cached by content alone.

Every method is a no-op while the session is not running and none of them
raises: a failure is counted and logged like a hook error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from tracecov.core.logging import get_logger

if TYPE_CHECKING:
    from tracecov.runtime.tracker import CoverageTracker

log = get_logger(__name__)

T = TypeVar("T")

_LOUD_ERRORS = 10


class FileProbe:
    __slots__ = ("tracker", "key")

    def __init__(self, tracker: CoverageTracker, key: str) -> None:
        self.tracker = tracker
        self.key = key

    def _failed(self, error: Exception, operation: str, item: int) -> None:
        performance = self.tracker.performance
        performance.errors += 1
        emit = log.warning if performance.errors <= _LOUD_ERRORS else log.debug
        emit("probe_error", path=self.key, operation=operation, item=item, error=repr(error))

    def line(self, line: int) -> None:
        tracker = self.tracker
        if not tracker.running:
            return
        try:
            tracker.on_line(self.key, line)
        except Exception as e:
            self._failed(e, "line", line)

    def enter(self, block_id: int) -> None:
        tracker = self.tracker
        if not tracker.running:
            return
        try:
            tracker.defer_block_entry(self.key, block_id)
        except Exception as e:
            self._failed(e, "enter", block_id)

    def call(self, function_id: int) -> None:
        tracker = self.tracker
        if not tracker.running:
            return
        try:
            tracker.on_call(self.key, function_id)
        except Exception as e:
            self._failed(e, "call", function_id)

    def called(self, function_id: int, value: T) -> T:
        """Lambda body wrapper: record the call, pass the value through."""
        self.call(function_id)
        return value

    def hit(self, line: int, value: T) -> T:
        """Record ``line`` when an expression on it is evaluated (``except`` types)."""
        self.line(line)
        return value

    def cond(self, condition_id: int, value: Any) -> bool:
        """Record one outcome of a guard component."""
        outcome = bool(value)
        tracker = self.tracker
        if tracker.running:
            try:
                tracker.on_condition(self.key, condition_id, outcome)
            except Exception as e:
                self._failed(e, "cond", condition_id)
        return outcome

    def guard(self, condition_id: int, value: Any, line: int = 0, block_id: int = -1) -> bool:
        """Record a full guard evaluation.

        ``elif`` and ``while`` headers cannot be preceded by a probe
        statement, so their guard also records the header ``line`` and,
        for ``elif``, the entry into its block. ``condition_id`` is -1 for
        a guard without a condition record.
        """
        outcome = bool(value)
        tracker = self.tracker
        if not tracker.running:
            return outcome
        try:
            if block_id >= 0:
                tracker.defer_block_entry(self.key, block_id)
            if line:
                tracker.on_line(self.key, line)
            if condition_id >= 0:
                tracker.on_condition(self.key, condition_id, outcome)
        except Exception as e:
            self._failed(e, "guard", condition_id)
        return outcome
