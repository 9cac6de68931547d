"""Runtime coverage state.

Structure fields are copied from the file's ``CodeMap`` when the file is
first initialised and never change afterwards. Runtime fields (``executed``,
``execution_count``, ``covered``, condition outcomes) are only written by
``CoverageStore`` mutators.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tracecov.analysis.models import (
    BlockKind,
    Classification,
    ClassificationStrategy,
    CodeMap,
    ConditionKind,
    SourceSpan,
    block_evidence,
)


@dataclass(slots=True)
class LineState:
    number: int
    classification: Classification
    executable: bool
    block_ids: tuple[int, ...] = ()
    executed: bool = False
    execution_count: int = 0
    covered: bool = False


@dataclass(slots=True)
class BlockState:
    block_id: int
    kind: BlockKind
    start_line: int
    end_line: int
    parent_id: int | None
    children: list[int] = field(default_factory=list)
    entry_line: int | None = None
    executed: bool = False
    execution_count: int = 0
    covered: bool = False
    # executed lines that prove the block ran (see block_evidence)
    evidence: int = 0

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def is_evidence(self, line: int) -> bool:
        return block_evidence(self.kind, self.start_line, self.end_line, line)


@dataclass(slots=True)
class ConditionState:
    condition_id: int
    kind: ConditionKind
    span: SourceSpan
    expression: str
    parent_id: int | None
    components: tuple[int, ...]
    block_id: int
    true_outcome_executed: bool = False
    false_outcome_executed: bool = False
    execution_count: int = 0

    @property
    def executed(self) -> bool:
        return self.execution_count > 0

    @property
    def fully_covered(self) -> bool:
        """Both outcomes have been observed."""
        return self.true_outcome_executed and self.false_outcome_executed


@dataclass(slots=True)
class FunctionState:
    function_id: int
    name: str
    start_line: int
    end_line: int
    executed: bool = False
    execution_count: int = 0
    covered: bool = False


@dataclass(slots=True)
class SourceFile:
    """One tracked file: its static map plus every runtime counter."""

    path: str
    source: str
    code_map: CodeMap
    lines: dict[int, LineState] = field(default_factory=dict)
    blocks: dict[int, BlockState] = field(default_factory=dict)
    conditions: dict[int, ConditionState] = field(default_factory=dict)
    functions: dict[int, FunctionState] = field(default_factory=dict)
    # block id -> 1 while an entry waits for its first evidence line
    pending_entries: dict[int, int] = field(default_factory=dict)

    @property
    def line_count(self) -> int:
        return self.code_map.line_count

    @property
    def strategy(self) -> ClassificationStrategy:
        return self.code_map.strategy

    @classmethod
    def from_code_map(cls, path: str, source: str, code_map: CodeMap) -> SourceFile:
        entry = cls(path=path, source=source, code_map=code_map)
        entry.populate()
        return entry

    def populate(self) -> None:
        """(Re)build every runtime record from the code map, all counters zero."""
        code_map = self.code_map
        self.lines = {
            info.number: LineState(
                number=info.number,
                classification=info.classification,
                executable=info.executable,
                block_ids=info.block_ids,
            )
            for info in code_map.lines
        }
        self.blocks = {
            block.block_id: BlockState(
                block_id=block.block_id,
                kind=block.kind,
                start_line=block.start_line,
                end_line=block.end_line,
                parent_id=block.parent_id,
                children=list(block.children),
                entry_line=block.entry_line,
            )
            for block in code_map.blocks
        }
        self.conditions = {
            cond.condition_id: ConditionState(
                condition_id=cond.condition_id,
                kind=cond.kind,
                span=cond.span,
                expression=cond.expression,
                parent_id=cond.parent_id,
                components=cond.components,
                block_id=cond.block_id,
            )
            for cond in code_map.conditions
        }
        self.functions = {
            fn.function_id: FunctionState(
                function_id=fn.function_id,
                name=fn.name,
                start_line=fn.start_line,
                end_line=fn.end_line,
            )
            for fn in code_map.functions
        }
        self.pending_entries = {}


@dataclass(frozen=True, slots=True)
class FileView:
    """Read-only description of a tracked file."""

    path: str
    line_count: int
    strategy: ClassificationStrategy
    fallback_reason: str | None
    code_map: CodeMap
