"""Read-only coverage snapshot.

File-centric: a snapshot maps canonical paths to per-file records. Only
executable lines carry a ``LineRecord``; ``line_count`` keeps the physical
total. Everything here is frozen and derived from a store (or loaded from
an export), never mutated.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from tracecov.config.constants import SNAPSHOT_VERSION


@dataclass(frozen=True, slots=True)
class LineRecord:
    executed: bool
    covered: bool
    execution_count: int


@dataclass(frozen=True, slots=True)
class BlockRecord:
    kind: str
    start_line: int
    end_line: int
    parent_id: int | None
    children: tuple[int, ...]
    executed: bool
    covered: bool
    execution_count: int


@dataclass(frozen=True, slots=True)
class ConditionRecord:
    kind: str
    expression: str
    span: tuple[int, int, int, int]  # line, col, end_line, end_col
    parent_id: int | None
    components: tuple[int, ...]
    block_id: int
    true_outcome_executed: bool
    false_outcome_executed: bool
    execution_count: int

    @property
    def executed(self) -> bool:
        return self.execution_count > 0

    @property
    def fully_covered(self) -> bool:
        return self.true_outcome_executed and self.false_outcome_executed


@dataclass(frozen=True, slots=True)
class FunctionRecord:
    name: str
    start_line: int
    end_line: int
    executed: bool
    covered: bool
    execution_count: int


@dataclass(frozen=True, slots=True)
class CoverageSummary:
    """Line statistics. Each executable line counts in exactly one of
    ``covered_lines``, ``executed_lines`` (ran, not covered) or
    ``not_covered_lines``.
    """

    total_lines: int
    executable_lines: int
    covered_lines: int
    executed_lines: int
    not_covered_lines: int
    coverage_percent: float
    execution_percent: float
    total_files: int = 1

    @classmethod
    def from_lines(
        cls,
        total_lines: int,
        lines: Mapping[int, LineRecord],
        total_files: int = 1,
    ) -> CoverageSummary:
        covered = sum(1 for r in lines.values() if r.covered)
        executed = sum(1 for r in lines.values() if r.executed and not r.covered)
        return cls.from_counts(total_lines, len(lines), covered, executed, total_files)

    @classmethod
    def from_counts(
        cls,
        total_lines: int,
        executable: int,
        covered: int,
        executed: int,
        total_files: int,
    ) -> CoverageSummary:
        return cls(
            total_lines=total_lines,
            executable_lines=executable,
            covered_lines=covered,
            executed_lines=executed,
            not_covered_lines=executable - covered - executed,
            coverage_percent=covered / executable * 100.0 if executable else 0.0,
            execution_percent=(executed + covered) / executable * 100.0 if executable else 0.0,
            total_files=total_files,
        )


@dataclass(frozen=True, slots=True)
class FileSnapshot:
    path: str
    line_count: int
    content_hash: str
    strategy: str
    fallback_reason: str | None = None
    lines: Mapping[int, LineRecord] = field(default_factory=dict)
    blocks: Mapping[int, BlockRecord] = field(default_factory=dict)
    conditions: Mapping[int, ConditionRecord] = field(default_factory=dict)
    functions: Mapping[int, FunctionRecord] = field(default_factory=dict)

    @property
    def summary(self) -> CoverageSummary:
        return CoverageSummary.from_lines(self.line_count, self.lines)

    @property
    def uncovered_lines(self) -> list[int]:
        """Executable lines that never ran, sorted."""
        return sorted(n for n, r in self.lines.items() if not r.executed)


@dataclass(frozen=True, slots=True)
class CoverageSnapshot:
    files: Mapping[str, FileSnapshot] = field(default_factory=dict)
    version: str = SNAPSHOT_VERSION

    @property
    def summary(self) -> CoverageSummary:
        """Aggregate across files, recomputed from the line records."""
        total = executable = covered = executed = 0
        for fs in self.files.values():
            s = fs.summary
            total += s.total_lines
            executable += s.executable_lines
            covered += s.covered_lines
            executed += s.executed_lines
        return CoverageSummary.from_counts(total, executable, covered, executed, len(self.files))
