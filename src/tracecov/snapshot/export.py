"""Snapshot assembly and the canonical export format.

Export schema (JSON)::

    {
        "version": "1.0",
        "summary": {total_lines, executable_lines, covered_lines, executed_lines,
                    not_covered_lines, coverage_percent, execution_percent, total_files},
        "files": {
            "<path>": {
                "summary": {...same fields...},
                "line_count": int,
                "content_hash": str,
                "strategy": "ast" | "heuristic",
                "fallback_reason": str | null,
                "lines": {"<n>": {executed, covered, execution_count}},
                "blocks": {"<id>": {kind, start_line, end_line, parent_id, children,
                                    executed, covered, execution_count}},
                "conditions": {"<id>": {kind, expression, span, parent_id, components,
                                        block_id, true_outcome_executed,
                                        false_outcome_executed, execution_count}},
                "functions": {"<id>": {name, start_line, end_line, executed, covered,
                                       execution_count}}
            }
        }
    }

Summaries are written for consumers but ignored on import; they are always
recomputed from the records.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from tracecov.core.errors import SourceReadError, ValidationError
from tracecov.snapshot.models import (
    BlockRecord,
    ConditionRecord,
    CoverageSnapshot,
    CoverageSummary,
    FileSnapshot,
    FunctionRecord,
    LineRecord,
)
from tracecov.store.store import CoverageStore


def build_snapshot(store: CoverageStore) -> CoverageSnapshot:
    """Copy the store's current state into a frozen snapshot."""
    files: dict[str, FileSnapshot] = {}
    for path in store.iter_files():
        view = store.get_file(path)
        files[path] = FileSnapshot(
            path=path,
            line_count=view.line_count,
            content_hash=view.code_map.content_hash,
            strategy=view.strategy.value,
            fallback_reason=view.fallback_reason,
            lines={
                s.number: LineRecord(s.executed, s.covered, s.execution_count)
                for s in store.lines(path)
                if s.executable
            },
            blocks={
                b.block_id: BlockRecord(
                    kind=b.kind.value,
                    start_line=b.start_line,
                    end_line=b.end_line,
                    parent_id=b.parent_id,
                    children=tuple(b.children),
                    executed=b.executed,
                    covered=b.covered,
                    execution_count=b.execution_count,
                )
                for b in store.blocks(path)
            },
            conditions={
                c.condition_id: ConditionRecord(
                    kind=c.kind.value,
                    expression=c.expression,
                    span=(c.span.line, c.span.col, c.span.end_line, c.span.end_col),
                    parent_id=c.parent_id,
                    components=tuple(c.components),
                    block_id=c.block_id,
                    true_outcome_executed=c.true_outcome_executed,
                    false_outcome_executed=c.false_outcome_executed,
                    execution_count=c.execution_count,
                )
                for c in store.conditions(path)
            },
            functions={
                f.function_id: FunctionRecord(
                    name=f.name,
                    start_line=f.start_line,
                    end_line=f.end_line,
                    executed=f.executed,
                    covered=f.covered,
                    execution_count=f.execution_count,
                )
                for f in store.functions(path)
            },
        )
    return CoverageSnapshot(files=files)


def _summary_dict(summary: CoverageSummary) -> dict[str, Any]:
    data = asdict(summary)
    data["coverage_percent"] = round(summary.coverage_percent, 2)
    data["execution_percent"] = round(summary.execution_percent, 2)
    return data


def _record_dict(record: Any) -> dict[str, Any]:
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, tuple):
            data[key] = list(value)
    return data


def snapshot_to_dict(snapshot: CoverageSnapshot) -> dict[str, Any]:
    files: dict[str, Any] = {}
    for path in sorted(snapshot.files):
        fs = snapshot.files[path]
        summary = _summary_dict(fs.summary)
        del summary["total_files"]
        files[path] = {
            "summary": summary,
            "line_count": fs.line_count,
            "content_hash": fs.content_hash,
            "strategy": fs.strategy,
            "fallback_reason": fs.fallback_reason,
            "lines": {str(n): _record_dict(r) for n, r in sorted(fs.lines.items())},
            "blocks": {str(i): _record_dict(r) for i, r in sorted(fs.blocks.items())},
            "conditions": {str(i): _record_dict(r) for i, r in sorted(fs.conditions.items())},
            "functions": {str(i): _record_dict(r) for i, r in sorted(fs.functions.items())},
        }
    return {
        "version": snapshot.version,
        "summary": _summary_dict(snapshot.summary),
        "files": files,
    }


def _int_keys(data: dict[str, Any], section: str, path: str) -> dict[int, dict[str, Any]]:
    raw = data.get(section, {})
    if not isinstance(raw, dict):
        raise ValidationError.invalid_snapshot(f"'{section}' of {path} is not an object")
    try:
        return {int(k): v for k, v in raw.items()}
    except ValueError as e:
        raise ValidationError.invalid_snapshot(f"non-numeric key in '{section}' of {path}") from e


def _file_from_dict(path: str, data: dict[str, Any]) -> FileSnapshot:
    try:
        return FileSnapshot(
            path=path,
            line_count=int(data["line_count"]),
            content_hash=str(data.get("content_hash", "")),
            strategy=str(data.get("strategy", "ast")),
            fallback_reason=data.get("fallback_reason"),
            lines={
                n: LineRecord(bool(r["executed"]), bool(r["covered"]), int(r["execution_count"]))
                for n, r in _int_keys(data, "lines", path).items()
            },
            blocks={
                i: BlockRecord(
                    kind=r["kind"],
                    start_line=int(r["start_line"]),
                    end_line=int(r["end_line"]),
                    parent_id=r.get("parent_id"),
                    children=tuple(r.get("children", ())),
                    executed=bool(r["executed"]),
                    covered=bool(r["covered"]),
                    execution_count=int(r["execution_count"]),
                )
                for i, r in _int_keys(data, "blocks", path).items()
            },
            conditions={
                i: ConditionRecord(
                    kind=r["kind"],
                    expression=r.get("expression", ""),
                    span=tuple(r["span"]),  # type: ignore[arg-type]
                    parent_id=r.get("parent_id"),
                    components=tuple(r.get("components", ())),
                    block_id=int(r["block_id"]),
                    true_outcome_executed=bool(r["true_outcome_executed"]),
                    false_outcome_executed=bool(r["false_outcome_executed"]),
                    execution_count=int(r["execution_count"]),
                )
                for i, r in _int_keys(data, "conditions", path).items()
            },
            functions={
                i: FunctionRecord(
                    name=r["name"],
                    start_line=int(r["start_line"]),
                    end_line=int(r["end_line"]),
                    executed=bool(r["executed"]),
                    covered=bool(r["covered"]),
                    execution_count=int(r["execution_count"]),
                )
                for i, r in _int_keys(data, "functions", path).items()
            },
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError.invalid_snapshot(f"file {path}: {e!r}") from e


def snapshot_from_dict(data: dict[str, Any]) -> CoverageSnapshot:
    """Inverse of ``snapshot_to_dict``.

    Raises:
        ValidationError: Missing version, unknown layout, or malformed records.
    """
    if not isinstance(data, dict) or "version" not in data:
        raise ValidationError.invalid_snapshot("missing 'version'")
    files = data.get("files", {})
    if not isinstance(files, dict):
        raise ValidationError.invalid_snapshot("'files' is not an object")
    return CoverageSnapshot(
        files={path: _file_from_dict(path, fd) for path, fd in files.items()},
        version=str(data["version"]),
    )


def save_snapshot(snapshot: CoverageSnapshot, path: str | Path) -> Path:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(snapshot_to_dict(snapshot), indent=2) + "\n", encoding="utf-8")
    return target


def load_snapshot(path: str | Path) -> CoverageSnapshot:
    source = Path(path)
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except OSError as e:
        raise SourceReadError.unreadable(str(source), str(e)) from e
    except json.JSONDecodeError as e:
        raise ValidationError.invalid_snapshot(f"{source}: {e}") from e
    return snapshot_from_dict(data)
