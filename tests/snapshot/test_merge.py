"""Tests for snapshot merging."""

from collections.abc import Callable
from dataclasses import replace

from tracecov.snapshot import CoverageSnapshot, merge, merge_snapshots


def line_counts(snapshot: CoverageSnapshot) -> dict[int, int]:
    (fs,) = snapshot.files.values()
    return {n: r.execution_count for n, r in fs.lines.items()}


class TestMerge:
    """Sum-and-OR semantics."""

    def test_given_disjoint_sessions_when_merged_then_counts_summed(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        """Two runs over different test subsets add up line by line."""
        # Given
        first = session_snapshot(executed=(1, 2, 3, 6), count=2)
        second = session_snapshot(executed=(1, 2, 4, 6), count=1)

        # When
        merged = merge(first, second)

        # Then
        assert line_counts(merged) == {1: 3, 2: 3, 3: 2, 4: 1, 6: 3}
        (fs,) = merged.files.values()
        assert fs.uncovered_lines == []

    def test_given_flags_when_merged_then_or_ed(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        first = session_snapshot(executed=(1, 3), covered=(3,))
        second = session_snapshot(executed=(1,))

        (fs,) = merge(second, first).files.values()

        assert fs.lines[3].covered
        assert fs.lines[3].executed
        assert fs.blocks[2].executed

    def test_given_three_snapshots_when_grouped_differently_then_same_result(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        a = session_snapshot(executed=(1,))
        b = session_snapshot(executed=(1, 2), covered=(2,))
        c = session_snapshot(executed=(4,), count=5)

        assert merge(merge(a, b), c) == merge(a, merge(b, c))
        assert merge(a, b) == merge(b, a)

    def test_given_file_in_one_input_when_merged_then_passed_through(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        one = session_snapshot(executed=(1,))
        (path,) = one.files
        moved = replace(one.files[path], path="/elsewhere/b.py")
        other = CoverageSnapshot(files={"/elsewhere/b.py": moved})

        merged = merge(one, other)

        assert sorted(merged.files) == sorted([path, "/elsewhere/b.py"])
        assert merged.files["/elsewhere/b.py"] is other.files["/elsewhere/b.py"]

    def test_given_heuristic_input_when_merged_then_strategy_heuristic(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        ast_snap = session_snapshot()
        (path,) = ast_snap.files
        heuristic = CoverageSnapshot(
            files={path: replace(ast_snap.files[path], strategy="heuristic", fallback_reason="x")}
        )

        (fs,) = merge(ast_snap, heuristic).files.values()

        assert fs.strategy == "heuristic"
        assert fs.fallback_reason == "x"

    def test_given_different_content_when_merged_then_left_structure_kept(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        left = session_snapshot(executed=(1,))
        (path,) = left.files
        right = CoverageSnapshot(files={path: replace(left.files[path], content_hash="0" * 64)})

        (fs,) = merge(left, right).files.values()

        assert fs.content_hash == left.files[path].content_hash
        assert fs.lines[1].execution_count == 2


class TestMergeSnapshots:
    def test_given_no_inputs_when_folded_then_empty(self) -> None:
        assert merge_snapshots([]) == CoverageSnapshot()

    def test_given_many_inputs_when_folded_then_counts_summed(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        runs = [session_snapshot(executed=(6,)) for _ in range(4)]
        assert line_counts(merge_snapshots(runs))[6] == 4
