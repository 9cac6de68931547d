"""Snapshot merging with sum-and-OR semantics.

Merging combines independent runs of the same code (parallel workers,
separate test subsets):

- executed / covered / outcome flags are OR-ed
- execution counts are summed
- files, lines, blocks, conditions and functions present in only one
  input pass through unchanged

Both operations are associative and commutative on the runtime fields, so
workers can be folded in any grouping. When the two inputs disagree on a
file's structure (different content hash), the left input's structure wins
and the disagreement is logged.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from typing import TypeVar

from tracecov.core.logging import get_logger
from tracecov.snapshot.models import (
    BlockRecord,
    ConditionRecord,
    CoverageSnapshot,
    FileSnapshot,
    FunctionRecord,
    LineRecord,
)

log = get_logger(__name__)

R = TypeVar("R")


def _merge_maps(
    a: Mapping[int, R], b: Mapping[int, R], combine: Callable[[R, R], R]
) -> dict[int, R]:
    merged = dict(a)
    for key, record in b.items():
        merged[key] = combine(merged[key], record) if key in merged else record
    return merged


def _merge_line(a: LineRecord, b: LineRecord) -> LineRecord:
    return LineRecord(
        executed=a.executed or b.executed,
        covered=a.covered or b.covered,
        execution_count=a.execution_count + b.execution_count,
    )


def _merge_block(a: BlockRecord, b: BlockRecord) -> BlockRecord:
    return replace(
        a,
        executed=a.executed or b.executed,
        covered=a.covered or b.covered,
        execution_count=a.execution_count + b.execution_count,
    )


def _merge_condition(a: ConditionRecord, b: ConditionRecord) -> ConditionRecord:
    return replace(
        a,
        true_outcome_executed=a.true_outcome_executed or b.true_outcome_executed,
        false_outcome_executed=a.false_outcome_executed or b.false_outcome_executed,
        execution_count=a.execution_count + b.execution_count,
    )


def _merge_function(a: FunctionRecord, b: FunctionRecord) -> FunctionRecord:
    return replace(
        a,
        executed=a.executed or b.executed,
        covered=a.covered or b.covered,
        execution_count=a.execution_count + b.execution_count,
    )


def merge_file_snapshots(a: FileSnapshot, b: FileSnapshot) -> FileSnapshot:
    """Merge two snapshots of the same file."""
    if a.content_hash and b.content_hash and a.content_hash != b.content_hash:
        log.warning(
            "merge_content_mismatch",
            path=a.path,
            left=a.content_hash[:12],
            right=b.content_hash[:12],
        )
    return FileSnapshot(
        path=a.path,
        line_count=max(a.line_count, b.line_count),
        content_hash=a.content_hash or b.content_hash,
        # Lower-confidence classification wins
        strategy="heuristic" if "heuristic" in (a.strategy, b.strategy) else a.strategy,
        fallback_reason=a.fallback_reason or b.fallback_reason,
        lines=_merge_maps(a.lines, b.lines, _merge_line),
        blocks=_merge_maps(a.blocks, b.blocks, _merge_block),
        conditions=_merge_maps(a.conditions, b.conditions, _merge_condition),
        functions=_merge_maps(a.functions, b.functions, _merge_function),
    )


def merge(a: CoverageSnapshot, b: CoverageSnapshot) -> CoverageSnapshot:
    """Merge two snapshots; see module docstring for the rules."""
    files: dict[str, FileSnapshot] = dict(a.files)
    for path, fs in b.files.items():
        files[path] = merge_file_snapshots(files[path], fs) if path in files else fs
    return CoverageSnapshot(files=files, version=a.version)


def merge_snapshots(snapshots: Iterable[CoverageSnapshot]) -> CoverageSnapshot:
    """Fold any number of snapshots left to right.

    Returns an empty snapshot for an empty input.
    """
    result: CoverageSnapshot | None = None
    for snapshot in snapshots:
        result = snapshot if result is None else merge(result, snapshot)
    return result if result is not None else CoverageSnapshot()
