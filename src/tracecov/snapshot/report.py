"""Structured and text summaries of a snapshot.

Output schema for build_summary:
{
    "summary": {
        "total_files": int,
        "total_lines": int,
        "executable_lines": int,
        "covered_lines": int,
        "executed_lines": int,
        "not_covered_lines": int,
        "coverage_percent": float,
        "execution_percent": float,
        "total_functions": int,          # only when functions exist
        "executed_functions": int,
        "total_conditions": int,         # only when conditions exist
        "fully_covered_conditions": int
    },
    "files": [
        {
            "path": str,
            "strategy": "ast" | "heuristic",
            "coverage_percent": float,
            "execution_percent": float,
            "missed_lines": [int, ...],  # executable, never executed
            "partial_conditions": int | absent
        },
        ...
    ]
}
"""

from typing import Any

from tracecov.snapshot.models import CoverageSnapshot


def compute_file_stats(snapshot: CoverageSnapshot) -> list[dict[str, Any]]:
    """Per-file statistics, sorted by path."""
    file_stats = []

    for path in sorted(snapshot.files):
        fs = snapshot.files[path]
        summary = fs.summary

        stats: dict[str, Any] = {
            "path": path,
            "strategy": fs.strategy,
            "executable_lines": summary.executable_lines,
            "covered_lines": summary.covered_lines,
            "executed_lines": summary.executed_lines,
            "coverage_percent": round(summary.coverage_percent, 2),
            "execution_percent": round(summary.execution_percent, 2),
            "missed_lines": fs.uncovered_lines,
        }

        # Top-level guards that ran but never went both ways
        top_level = [c for c in fs.conditions.values() if c.parent_id is None]
        if top_level:
            stats["partial_conditions"] = sum(
                1 for c in top_level if c.executed and not c.fully_covered
            )

        file_stats.append(stats)

    return file_stats


def build_summary(
    snapshot: CoverageSnapshot,
    *,
    include_files: bool = True,
    max_files: int | None = None,
    max_missed_lines: int = 20,
) -> dict[str, Any]:
    """Build a structured summary from a snapshot.

    Args:
        snapshot: The snapshot to summarize.
        include_files: Whether to include per-file details.
        max_files: Limit number of files (lowest execution first). None = all.
        max_missed_lines: Max missed lines to list per file.

    Returns:
        Structured dict suitable for JSON serialization.
    """
    summary = snapshot.summary
    summary_dict: dict[str, Any] = {
        "total_files": summary.total_files,
        "total_lines": summary.total_lines,
        "executable_lines": summary.executable_lines,
        "covered_lines": summary.covered_lines,
        "executed_lines": summary.executed_lines,
        "not_covered_lines": summary.not_covered_lines,
        "coverage_percent": round(summary.coverage_percent, 2),
        "execution_percent": round(summary.execution_percent, 2),
    }

    functions = [f for fs in snapshot.files.values() for f in fs.functions.values()]
    if functions:
        summary_dict["total_functions"] = len(functions)
        summary_dict["executed_functions"] = sum(1 for f in functions if f.executed)

    conditions = [c for fs in snapshot.files.values() for c in fs.conditions.values()]
    if conditions:
        summary_dict["total_conditions"] = len(conditions)
        summary_dict["fully_covered_conditions"] = sum(1 for c in conditions if c.fully_covered)

    result: dict[str, Any] = {"summary": summary_dict}

    if include_files:
        file_stats = compute_file_stats(snapshot)

        # Least-executed first to surface problem areas
        file_stats.sort(key=lambda f: f["execution_percent"])

        if max_files is not None:
            file_stats = file_stats[:max_files]

        for fs in file_stats:
            missed = fs["missed_lines"]
            if len(missed) > max_missed_lines:
                fs["missed_lines"] = missed[:max_missed_lines]
                fs["missed_lines_truncated"] = True

        result["files"] = file_stats

    return result


def build_text_summary(snapshot: CoverageSnapshot) -> str:
    """One-line human-readable summary."""
    summary = snapshot.summary
    if summary.executable_lines == 0:
        return "No coverage data"

    return (
        f"Executed: {summary.execution_percent:.1f}% "
        f"({summary.executed_lines + summary.covered_lines}/{summary.executable_lines} lines), "
        f"covered: {summary.coverage_percent:.1f}% ({summary.covered_lines} lines)"
    )
