"""Tests for structured and text summaries."""

from collections.abc import Callable
from dataclasses import replace

from tracecov.snapshot import (
    CoverageSnapshot,
    build_summary,
    build_text_summary,
    compute_file_stats,
)


class TestComputeFileStats:
    def test_given_partly_run_file_when_computed_then_missed_lines_listed(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        (stats,) = compute_file_stats(session_snapshot(executed=(1, 2, 3, 6)))
        assert stats["missed_lines"] == [4]
        assert stats["execution_percent"] == 80.0
        assert stats["strategy"] == "ast"

    def test_given_guard_seen_one_way_when_computed_then_partial(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        # Given
        snapshot = session_snapshot(executed=(1, 2, 3))
        (path,) = snapshot.files
        fs = snapshot.files[path]
        condition = replace(fs.conditions[0], true_outcome_executed=True, execution_count=1)
        snapshot = CoverageSnapshot(
            files={path: replace(fs, conditions={0: condition})}
        )

        # When
        (stats,) = compute_file_stats(snapshot)

        # Then
        assert stats["partial_conditions"] == 1


class TestBuildSummary:
    """Structured summary output."""

    def test_given_snapshot_when_summarized_then_totals_present(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        result = build_summary(session_snapshot(executed=(1, 6), covered=(6,)))

        summary = result["summary"]
        assert summary["total_files"] == 1
        assert summary["executable_lines"] == 5
        assert summary["covered_lines"] == 1
        assert summary["executed_lines"] == 1
        assert summary["total_functions"] == 1
        assert summary["executed_functions"] == 0
        assert summary["total_conditions"] == 1
        assert summary["fully_covered_conditions"] == 0
        assert len(result["files"]) == 1

    def test_given_many_missed_lines_when_limited_then_truncated(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        result = build_summary(session_snapshot(), max_missed_lines=2)
        (stats,) = result["files"]
        assert stats["missed_lines"] == [1, 2]
        assert stats["missed_lines_truncated"] is True

    def test_given_exclude_files_when_summarized_then_no_file_list(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        assert "files" not in build_summary(session_snapshot(), include_files=False)


class TestBuildTextSummary:
    def test_given_empty_snapshot_when_rendered_then_no_data(self) -> None:
        assert build_text_summary(CoverageSnapshot()) == "No coverage data"

    def test_given_snapshot_when_rendered_then_percentages(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        text = build_text_summary(session_snapshot(executed=(1, 2, 3, 6), covered=(3,)))
        assert text == "Executed: 80.0% (4/5 lines), covered: 20.0% (1 lines)"
