"""End-of-session reconciliation.

Runs once when a session stops, before the snapshot is built. Static
structure is the final authority: runtime flags that contradict it are
removed, block state is re-derived from line state, and structural links
that cannot be resolved are repaired by relinking to the file's root.
Nothing here raises; every repair is recorded in the report.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tracecov.config.constants import ROOT_BLOCK_ID
from tracecov.core.errors import ConsistencyError
from tracecov.core.logging import get_logger
from tracecov.store.store import CoverageStore

log = get_logger(__name__)


@dataclass(slots=True)
class ReconciliationReport:
    """What reconciliation changed, per category."""

    files: int = 0
    lines_stripped: int = 0
    lines_forced: int = 0
    blocks_marked: int = 0
    blocks_cleared: int = 0
    pending_dropped: int = 0
    blocks_relinked: int = 0
    conditions_relinked: int = 0
    issues: list[ConsistencyError] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.issues and not (
            self.lines_stripped
            or self.lines_forced
            or self.blocks_marked
            or self.blocks_cleared
            or self.pending_dropped
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "files": self.files,
            "lines_stripped": self.lines_stripped,
            "lines_forced": self.lines_forced,
            "blocks_marked": self.blocks_marked,
            "blocks_cleared": self.blocks_cleared,
            "pending_dropped": self.pending_dropped,
            "blocks_relinked": self.blocks_relinked,
            "conditions_relinked": self.conditions_relinked,
            "issues": [issue.to_dict() for issue in self.issues],
        }


def _resolve_block_links(store: CoverageStore, path: str, report: ReconciliationReport) -> None:
    blocks = {b.block_id: b for b in store.blocks(path)}

    def relink(block_id: int, issue: ConsistencyError) -> None:
        report.issues.append(issue)
        report.blocks_relinked += 1
        store.relink_block(path, block_id, ROOT_BLOCK_ID)
        blocks[block_id].parent_id = ROOT_BLOCK_ID

    for block_id in sorted(blocks):
        if block_id == ROOT_BLOCK_ID:
            continue
        block = blocks[block_id]
        parent_id = block.parent_id
        if parent_id is None or parent_id not in blocks or parent_id == block_id:
            relink(block_id, ConsistencyError.orphan(path, "block", block_id, parent_id))
            continue
        parent = blocks[parent_id]
        if not (parent.start_line <= block.start_line and block.end_line <= parent.end_line):
            relink(block_id, ConsistencyError.containment(path, block_id, parent_id))
            continue
        if block_id not in parent.children:
            # Deferred link: parent arrived after the child
            store.relink_block(path, block_id, parent_id)

    # Break any cycle that survived, one member at a time
    for block_id in sorted(blocks):
        seen: list[int] = []
        current: int | None = block_id
        while current is not None and current != ROOT_BLOCK_ID:
            if current in seen:
                cycle = seen[seen.index(current) :]
                relink(current, ConsistencyError.cycle(path, "block", cycle))
                break
            seen.append(current)
            current = blocks[current].parent_id


def _resolve_condition_links(
    store: CoverageStore, path: str, report: ReconciliationReport
) -> None:
    conditions = {c.condition_id: c for c in store.conditions(path)}
    for condition_id in sorted(conditions):
        parent_id = conditions[condition_id].parent_id
        if parent_id is not None and (parent_id not in conditions or parent_id == condition_id):
            report.issues.append(
                ConsistencyError.orphan(path, "condition", condition_id, parent_id)
            )
            report.conditions_relinked += 1
            store.relink_condition(path, condition_id, None)
            conditions[condition_id].parent_id = None

    for condition_id in sorted(conditions):
        seen: list[int] = []
        current: int | None = condition_id
        while current is not None:
            if current in seen:
                cycle = seen[seen.index(current) :]
                report.issues.append(ConsistencyError.cycle(path, "condition", cycle))
                report.conditions_relinked += 1
                store.relink_condition(path, current, None)
                conditions[current].parent_id = None
                break
            seen.append(current)
            current = conditions[current].parent_id


def _reconcile_lines(store: CoverageStore, path: str, report: ReconciliationReport) -> None:
    for line in store.lines(path):
        if not line.executable:
            if store.strip_line(path, line.number):
                report.lines_stripped += 1
        elif line.covered and not line.executed:
            store.force_line_executed(path, line.number)
            report.lines_forced += 1


def _reconcile_blocks(store: CoverageStore, path: str, report: ReconciliationReport) -> None:
    pending = store.pending_entries(path)
    for block in store.blocks(path):
        evidence = store.recount_block_evidence(path, block.block_id)
        if block.block_id in pending:
            # entered but no line of the body ran afterwards
            report.pending_dropped += store.take_pending_entries(path, block.block_id)
        if evidence > 0:
            if not block.executed and store.set_block_executed(path, block.block_id):
                report.blocks_marked += 1
        elif block.executed:
            report.issues.append(
                ConsistencyError.execution_without_evidence(path, block.block_id)
            )
            store.clear_block_executed(path, block.block_id)
            report.blocks_cleared += 1


def reconcile(store: CoverageStore) -> ReconciliationReport:
    """Repair every tracked file in ``store``; never raises ConsistencyError."""
    report = ReconciliationReport()
    for path in store.iter_files():
        report.files += 1
        _resolve_block_links(store, path, report)
        _resolve_condition_links(store, path, report)
        _reconcile_lines(store, path, report)
        _reconcile_blocks(store, path, report)

    for issue in report.issues:
        log.warning("reconcile_issue", error=issue.error_name, **issue.details)
    if not report.clean:
        log.info(
            "reconcile_complete",
            files=report.files,
            lines_stripped=report.lines_stripped,
            blocks_marked=report.blocks_marked,
            blocks_cleared=report.blocks_cleared,
            issues=len(report.issues),
        )
    return report
