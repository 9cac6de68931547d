"""Coverage snapshots: export, import, merge and summaries.

Usage::

    from tracecov.snapshot import load_snapshot, merge_snapshots, build_summary

    snapshots = [load_snapshot(p) for p in worker_outputs]
    merged = merge_snapshots(snapshots)
    summary = build_summary(merged)
"""

from tracecov.snapshot.export import (
    build_snapshot,
    load_snapshot,
    save_snapshot,
    snapshot_from_dict,
    snapshot_to_dict,
)
from tracecov.snapshot.merge import merge, merge_file_snapshots, merge_snapshots
from tracecov.snapshot.models import (
    BlockRecord,
    ConditionRecord,
    CoverageSnapshot,
    CoverageSummary,
    FileSnapshot,
    FunctionRecord,
    LineRecord,
)
from tracecov.snapshot.report import build_summary, build_text_summary, compute_file_stats

__all__ = [
    # Models
    "BlockRecord",
    "ConditionRecord",
    "CoverageSnapshot",
    "CoverageSummary",
    "FileSnapshot",
    "FunctionRecord",
    "LineRecord",
    # Export
    "build_snapshot",
    "load_snapshot",
    "save_snapshot",
    "snapshot_from_dict",
    "snapshot_to_dict",
    # Merge
    "merge",
    "merge_file_snapshots",
    "merge_snapshots",
    # Report
    "build_summary",
    "build_text_summary",
    "compute_file_stats",
]
