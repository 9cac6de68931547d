"""The same scripts under both collectors.

Where the collectors agree the tests run against both; where they are
known to differ each test pins down what each one reports.
"""

from collections.abc import Callable
from pathlib import Path

import pytest

from tracecov.runtime.tracker import CoverageTracker
from tracecov.snapshot import FileSnapshot
from tracecov.store.paths import normalize_path

BRANCH = """\
x = 1
if x > 0:
    x = 2
# done
result = x
"""

BLOCK_COMMENT = '''\
"""
foo
"""
value = 1
'''

SHORT_CIRCUIT = """\
a = False
b = True
if a and b:
    hit = 1
done = 1
"""
# conditions: 0 ``a and b``, 1 ``a``, 2 ``b``; block 1 is the if

LOOP = """\
total = 0
for i in range(3):
    total += i
"""

MATCH = """\
command = "stop"
match command:
    case "go":
        moved = True
    case _:
        moved = False
"""

SHARED_HEADER_LINE = """\
a, b, hit = 1, {b}, 0
if (a and
        b): hit = 1
"""
# the body starts on the line that finishes the guard; block 1 is the if

CLASSIFY = """\
def classify(n):
    if n > 0:
        return "pos"
    return "other"


for value in (1, -1, 2):
    classify(value)
"""


def run(tracker: CoverageTracker, path: Path) -> FileSnapshot:
    tracker.start()
    tracker.run_path(path)
    return tracker.stop().files[normalize_path(path)]


def executed(record: FileSnapshot) -> list[int]:
    return sorted(n for n, r in record.lines.items() if r.executed)


class TestCollectorsAgree:
    """Observable results shared by the debug hook and instrumentation."""

    def test_given_taken_branch_then_body_and_block_executed(
        self,
        instrumentation: bool,
        make_tracker: Callable[..., CoverageTracker],
        write_script: Callable[..., Path],
    ) -> None:
        # Given
        path = write_script(BRANCH)

        # When
        record = run(make_tracker(instrumentation), path)

        # Then
        assert executed(record) == [1, 2, 3, 5]
        assert 4 not in record.lines
        assert record.blocks[1].executed
        assert record.blocks[1].execution_count == 1
        guard = record.conditions[0]
        assert (guard.true_outcome_executed, guard.false_outcome_executed) == (True, False)

    def test_given_block_comment_then_never_executable(
        self,
        instrumentation: bool,
        make_tracker: Callable[..., CoverageTracker],
        write_script: Callable[..., Path],
    ) -> None:
        path = write_script(BLOCK_COMMENT)

        record = run(make_tracker(instrumentation), path)

        assert sorted(record.lines) == [4]
        assert record.lines[4].executed

    def test_given_short_circuit_then_guard_false_and_body_skipped(
        self,
        instrumentation: bool,
        make_tracker: Callable[..., CoverageTracker],
        write_script: Callable[..., Path],
    ) -> None:
        path = write_script(SHORT_CIRCUIT)
        tracker = make_tracker(instrumentation)

        record = run(tracker, path)

        guard = record.conditions[0]
        assert guard.executed
        assert guard.false_outcome_executed
        assert not guard.fully_covered
        assert not record.conditions[2].executed
        assert executed(record) == [1, 2, 3, 5]
        assert not record.blocks[1].executed

    def test_given_assertion_on_skipped_line_then_forced_executed(
        self,
        instrumentation: bool,
        make_tracker: Callable[..., CoverageTracker],
        write_script: Callable[..., Path],
    ) -> None:
        """An assertion proving a line proves the line ran."""
        # Given
        path = write_script(SHORT_CIRCUIT)
        tracker = make_tracker(instrumentation)
        tracker.start()
        tracker.run_path(path)

        # When
        tracker.mark_covered(path, 4)
        record = tracker.stop().files[normalize_path(path)]

        # Then
        line = record.lines[4]
        assert (line.executed, line.covered) == (True, True)
        assert record.blocks[1].covered
        assert record.summary.covered_lines == 1

    def test_given_function_calls_then_same_counts(
        self, make_tracker: Callable[..., CoverageTracker], write_script: Callable[..., Path]
    ) -> None:
        # Given
        path = write_script(CLASSIFY)

        # When
        hook = run(make_tracker(False), path)
        probes = run(make_tracker(True), path)

        # Then
        def counts(record: FileSnapshot) -> dict[str, object]:
            return {
                "lines": {n: r.execution_count for n, r in record.lines.items() if n != 7},
                "blocks": {b: r.execution_count for b, r in record.blocks.items()},
                "functions": {f: r.execution_count for f, r in record.functions.items()},
                "guard": (
                    record.conditions[0].true_outcome_executed,
                    record.conditions[0].false_outcome_executed,
                    record.conditions[0].execution_count,
                ),
            }

        assert counts(hook) == counts(probes)

    @pytest.mark.parametrize(("b", "taken"), [(1, True), (0, False)], ids=["taken", "skipped"])
    def test_given_body_on_guard_continuation_line_then_counted_only_when_taken(
        self,
        instrumentation: bool,
        make_tracker: Callable[..., CoverageTracker],
        write_script: Callable[..., Path],
        b: int,
        taken: bool,
    ) -> None:
        """Evaluating the guard's tail is not the body running."""
        # Given
        path = write_script(SHARED_HEADER_LINE.format(b=b))
        tracker = make_tracker(instrumentation)

        # When
        tracker.start()
        namespace = tracker.run_path(path)
        record = tracker.stop().files[normalize_path(path)]

        # Then
        assert namespace["hit"] == b
        assert record.lines[2].execution_count == 1
        assert record.lines[3].executed is taken
        assert record.lines[3].execution_count == int(taken)
        assert record.blocks[1].executed is taken
        assert record.blocks[1].execution_count == int(taken)
        guard = record.conditions[0]
        assert (guard.true_outcome_executed, guard.false_outcome_executed) == (taken, not taken)


class TestCollectorsDiffer:
    """Known, accepted differences."""

    def test_component_outcomes_only_seen_by_instrumentation(
        self, make_tracker: Callable[..., CoverageTracker], write_script: Callable[..., Path]
    ) -> None:
        path = write_script(SHORT_CIRCUIT)

        hook = run(make_tracker(False), path)
        probes = run(make_tracker(True), path)

        assert not hook.conditions[1].executed
        assert probes.conditions[1].false_outcome_executed
        assert probes.conditions[1].execution_count == 1

    def test_loop_header_counted_per_iteration_only_by_hook(
        self, make_tracker: Callable[..., CoverageTracker], write_script: Callable[..., Path]
    ) -> None:
        path = write_script(LOOP)

        hook = run(make_tracker(False), path)
        probes = run(make_tracker(True), path)

        assert hook.lines[3].execution_count == probes.lines[3].execution_count == 3
        assert probes.lines[2].execution_count == 1
        assert hook.lines[2].execution_count > 3

    def test_unmatched_case_line_only_executed_under_hook(
        self, make_tracker: Callable[..., CoverageTracker], write_script: Callable[..., Path]
    ) -> None:
        path = write_script(MATCH)

        hook = run(make_tracker(False), path)
        probes = run(make_tracker(True), path)

        assert hook.lines[3].executed
        assert not probes.lines[3].executed
        assert not hook.lines[4].executed and not probes.lines[4].executed
        assert hook.lines[6].executed and probes.lines[6].executed

    def test_abandoned_entry_dropped_only_by_instrumentation(
        self, make_tracker: Callable[..., CoverageTracker], write_script: Callable[..., Path]
    ) -> None:
        """The if block's entry probe runs before the guard; the hook never sees it."""
        path = write_script(SHORT_CIRCUIT)
        hook_tracker = make_tracker(False)
        probe_tracker = make_tracker(True)

        run(hook_tracker, path)
        run(probe_tracker, path)

        assert hook_tracker.report is not None and probe_tracker.report is not None
        assert hook_tracker.report.pending_dropped == 0
        assert probe_tracker.report.pending_dropped == 1
