"""Tests for snapshot assembly and the export format."""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from tracecov.core.errors import ErrorCode, SourceReadError, ValidationError
from tracecov.snapshot import (
    CoverageSnapshot,
    load_snapshot,
    save_snapshot,
    snapshot_from_dict,
    snapshot_to_dict,
)


class TestBuildSnapshot:
    """Snapshots copy store state for executable lines only."""

    def test_given_session_when_snapshotted_then_executable_lines_recorded(
        self, session_snapshot: Callable[..., CoverageSnapshot], module_path: str
    ) -> None:
        # Given / When
        snapshot = session_snapshot(executed=(1, 2, 3, 6))

        # Then
        (fs,) = snapshot.files.values()
        assert sorted(fs.lines) == [1, 2, 3, 4, 6]
        assert fs.line_count == 6
        assert fs.uncovered_lines == [4]
        assert fs.blocks[2].executed
        assert fs.strategy == "ast"

    def test_given_covered_lines_when_summarized_then_each_line_in_one_bucket(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        snapshot = session_snapshot(executed=(1, 2, 3, 6), covered=(3,))

        summary = snapshot.summary

        assert summary.executable_lines == 5
        assert summary.covered_lines == 1
        assert summary.executed_lines == 3
        assert summary.not_covered_lines == 1
        assert summary.coverage_percent == pytest.approx(20.0)
        assert summary.execution_percent == pytest.approx(80.0)

    def test_given_no_executable_lines_when_summarized_then_zero_percent(self) -> None:
        summary = CoverageSnapshot().summary
        assert summary.executable_lines == 0
        assert summary.coverage_percent == 0.0
        assert summary.execution_percent == 0.0


class TestExportFormat:
    def test_given_snapshot_when_exported_then_schema_has_string_keys(
        self, session_snapshot: Callable[..., CoverageSnapshot], module_path: str
    ) -> None:
        snapshot = session_snapshot(executed=(1,))

        data = snapshot_to_dict(snapshot)

        (file_data,) = data["files"].values()
        assert data["version"] == "1.0"
        assert data["summary"]["total_files"] == 1
        assert "total_files" not in file_data["summary"]
        assert file_data["lines"]["1"] == {"executed": True, "covered": False, "execution_count": 1}
        assert file_data["blocks"]["1"]["children"] == [2]
        assert file_data["conditions"]["0"]["span"] == [2, 7, 2, 8]

    def test_given_exported_snapshot_when_reloaded_then_equal(
        self, session_snapshot: Callable[..., CoverageSnapshot], tmp_path: Path
    ) -> None:
        """Saving then loading reproduces every record."""
        # Given
        snapshot = session_snapshot(executed=(1, 2, 3, 6), covered=(2,), count=3)

        # When
        target = save_snapshot(snapshot, tmp_path / "out" / "coverage.json")
        loaded = load_snapshot(target)

        # Then
        assert loaded == snapshot

    def test_given_stale_summary_when_loaded_then_recomputed(
        self, session_snapshot: Callable[..., CoverageSnapshot]
    ) -> None:
        data = snapshot_to_dict(session_snapshot(executed=(1,)))
        data["summary"]["covered_lines"] = 999

        loaded = snapshot_from_dict(data)

        assert loaded.summary.covered_lines == 0


class TestImportErrors:
    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"version": "1.0", "files": []},
            {"version": "1.0", "files": {"a.py": {"lines": {}}}},
            {"version": "1.0", "files": {"a.py": {"line_count": 1, "lines": {"x": {}}}}},
            {"version": "1.0", "files": {"a.py": {"line_count": 1, "lines": {"1": {}}}}},
        ],
    )
    def test_given_malformed_data_when_imported_then_invalid_snapshot(
        self, data: dict[str, object]
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            snapshot_from_dict(data)
        assert exc_info.value.code == ErrorCode.VALIDATION_INVALID_SNAPSHOT

    def test_given_invalid_json_when_loaded_then_invalid_snapshot(self, tmp_path: Path) -> None:
        target = tmp_path / "broken.json"
        target.write_text("{not json")
        with pytest.raises(ValidationError):
            load_snapshot(target)

    def test_given_missing_file_when_loaded_then_source_read_error(self, tmp_path: Path) -> None:
        with pytest.raises(SourceReadError):
            load_snapshot(tmp_path / "absent.json")

    def test_given_exported_json_when_parsed_then_plain_json(
        self, session_snapshot: Callable[..., CoverageSnapshot], tmp_path: Path
    ) -> None:
        target = save_snapshot(session_snapshot(), tmp_path / "c.json")
        assert json.loads(target.read_text())["version"] == "1.0"
