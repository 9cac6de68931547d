"""Block extraction with deferred parent resolution.

Blocks are allocated in a flat arena while the tree is walked; each one
records its parent as an arena index taken from the walk stack. Links are
only trusted after ``BlockArena.resolve`` has checked them: unknown
parents and containment breaches are relinked (and reported), a parent
cycle raises ``ConsistencyError``.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field

from tracecov.analysis.classifier import is_docstring_like
from tracecov.analysis.models import BlockInfo, BlockKind, LineInfo
from tracecov.analysis.parser import AnalysisBudget
from tracecov.config.constants import ROOT_BLOCK_ID
from tracecov.core.errors import ConsistencyError


@dataclass(slots=True)
class PendingBlock:
    """Arena slot: a block whose parent link is still provisional."""

    block_id: int
    kind: BlockKind
    start_line: int
    end_line: int
    parent_index: int | None
    entry_candidate: int | None = None
    children: list[int] = field(default_factory=list)


class BlockArena:
    """Flat, index-addressed block storage for one file."""

    def __init__(self, path: str, line_count: int) -> None:
        self.path = path
        self.line_count = line_count
        self.slots: list[PendingBlock] = [
            PendingBlock(ROOT_BLOCK_ID, BlockKind.ROOT, 1, max(line_count, 1), None, None)
        ]
        self.issues: list[ConsistencyError] = []

    def allocate(
        self,
        kind: BlockKind,
        start_line: int,
        end_line: int,
        parent_index: int | None,
        entry_candidate: int | None = None,
    ) -> int:
        block_id = len(self.slots)
        self.slots.append(
            PendingBlock(block_id, kind, start_line, end_line, parent_index, entry_candidate)
        )
        return block_id

    def _check_acyclic(self) -> None:
        # 0 = unvisited, 1 = on current path, 2 = known to reach the root
        state = [0] * len(self.slots)
        for start in range(len(self.slots)):
            path: list[int] = []
            current: int | None = start
            while current is not None and 0 <= current < len(self.slots) and state[current] != 2:
                if state[current] == 1:
                    cycle = path[path.index(current) :]
                    raise ConsistencyError.cycle(self.path, "block", cycle)
                state[current] = 1
                path.append(current)
                current = self.slots[current].parent_index
            for index in path:
                state[index] = 2

    def resolve(self, lines: list[LineInfo]) -> tuple[BlockInfo, ...]:
        """Validate every provisional link and freeze the arena."""
        self._check_acyclic()

        for slot in self.slots[1:]:
            parent = slot.parent_index
            if parent is None or not (0 <= parent < len(self.slots)) or parent == slot.block_id:
                self.issues.append(
                    ConsistencyError.orphan(self.path, "block", slot.block_id, parent)
                )
                slot.parent_index = ROOT_BLOCK_ID
                continue
            # Walk up until an ancestor actually contains this block
            while parent != ROOT_BLOCK_ID:
                candidate = self.slots[parent]
                if candidate.start_line <= slot.start_line and slot.end_line <= candidate.end_line:
                    break
                self.issues.append(
                    ConsistencyError.containment(self.path, slot.block_id, parent)
                )
                parent = candidate.parent_index if candidate.parent_index is not None else ROOT_BLOCK_ID
            slot.parent_index = parent

        for slot in self.slots:
            slot.children.clear()
        for slot in self.slots[1:]:
            assert slot.parent_index is not None
            self.slots[slot.parent_index].children.append(slot.block_id)

        return tuple(
            BlockInfo(
                block_id=slot.block_id,
                kind=slot.kind,
                start_line=slot.start_line,
                end_line=slot.end_line,
                parent_id=slot.parent_index,
                children=tuple(slot.children),
                entry_line=_first_executable(lines, slot.entry_candidate, slot.end_line),
            )
            for slot in self.slots
        )


def _first_executable(lines: list[LineInfo], start: int | None, end: int) -> int | None:
    if start is None:
        return None
    for number in range(start, min(end, len(lines)) + 1):
        if lines[number - 1].executable:
            return number
    return None


def find_clause_line(source_lines: list[str], keyword: str, after: int, before: int) -> int:
    """Line in ``(after, before]`` whose text opens with ``keyword``; ``before`` if none."""
    for number in range(after + 1, before + 1):
        stripped = source_lines[number - 1].lstrip()
        if stripped.startswith(keyword) and stripped[len(keyword) :].lstrip().startswith(":"):
            return number
    return before


def _body_entry(body: list[ast.stmt]) -> int | None:
    """First statement line of a body, skipping a leading docstring."""
    for stmt in body:
        if is_docstring_like(stmt):
            continue
        return stmt.lineno
    return None


def _end(node: ast.AST) -> int:
    return getattr(node, "end_lineno", None) or getattr(node, "lineno", 1)


def _is_repeat(node: ast.While) -> bool:
    return isinstance(node.test, ast.Constant) and bool(node.test.value)


class BlockExtractor(ast.NodeVisitor):
    """Stack-based walk allocating a block per compound-statement region.

    ``block_of`` maps each statement node that opened a block (and each
    ``match_case``) to that block id.
    """

    def __init__(
        self,
        arena: BlockArena,
        source_lines: list[str],
        budget: AnalysisBudget,
    ) -> None:
        self.arena = arena
        self.source_lines = source_lines
        self.budget = budget
        self.stack: list[int] = [ROOT_BLOCK_ID]
        self.block_of: dict[ast.AST, int] = {}

    # -- helpers ---------------------------------------------------------

    def _open(
        self,
        kind: BlockKind,
        start: int,
        end: int,
        entry: int | None,
        node: ast.AST | None = None,
    ) -> int:
        block_id = self.arena.allocate(kind, start, end, self.stack[-1], entry)
        if node is not None:
            self.block_of[node] = block_id
        return block_id

    def _walk_body(self, block_id: int, body: list[ast.stmt]) -> None:
        self.stack.append(block_id)
        try:
            for stmt in body:
                self.visit(stmt)
        finally:
            self.stack.pop()

    def _else_clause(self, orelse: list[ast.stmt], after: int) -> None:
        if not orelse:
            return
        else_line = find_clause_line(self.source_lines, "else", after, orelse[0].lineno)
        block_id = self._open(BlockKind.ELSE, else_line, _end(orelse[-1]), orelse[0].lineno)
        self._walk_body(block_id, orelse)

    def generic_visit(self, node: ast.AST) -> None:
        self.budget.step()
        super().generic_visit(node)

    # -- control flow ----------------------------------------------------

    def visit_If(self, node: ast.If, kind: BlockKind = BlockKind.IF) -> None:
        block_id = self._open(kind, node.lineno, _end(node), node.lineno, node)
        self._walk_body(block_id, node.body)

        if not node.orelse:
            return
        self.stack.append(block_id)
        try:
            first = node.orelse[0]
            text = self.source_lines[first.lineno - 1].lstrip()
            if len(node.orelse) == 1 and isinstance(first, ast.If) and text.startswith("elif"):
                self.visit_If(first, BlockKind.ELSE_IF)
            else:
                self._else_clause(node.orelse, _end(node.body[-1]))
        finally:
            self.stack.pop()

    def visit_While(self, node: ast.While) -> None:
        self.budget.step()
        kind = BlockKind.REPEAT if _is_repeat(node) else BlockKind.WHILE
        block_id = self._open(kind, node.lineno, _end(node), node.lineno, node)
        self._walk_body(block_id, node.body)
        self.stack.append(block_id)
        try:
            self._else_clause(node.orelse, _end(node.body[-1]))
        finally:
            self.stack.pop()

    def _visit_for(self, node: ast.For | ast.AsyncFor) -> None:
        self.budget.step()
        block_id = self._open(BlockKind.FOR, node.lineno, _end(node), node.lineno, node)
        self._walk_body(block_id, node.body)
        self.stack.append(block_id)
        try:
            self._else_clause(node.orelse, _end(node.body[-1]))
        finally:
            self.stack.pop()

    visit_For = _visit_for
    visit_AsyncFor = _visit_for

    def _visit_with(self, node: ast.With | ast.AsyncWith) -> None:
        self.budget.step()
        block_id = self._open(BlockKind.DO, node.lineno, _end(node), node.lineno, node)
        self._walk_body(block_id, node.body)

    visit_With = _visit_with
    visit_AsyncWith = _visit_with

    def _visit_try(self, node: ast.AST) -> None:
        self.budget.step()
        body: list[ast.stmt] = node.body  # type: ignore[attr-defined]
        handlers: list[ast.ExceptHandler] = node.handlers  # type: ignore[attr-defined]
        orelse: list[ast.stmt] = node.orelse  # type: ignore[attr-defined]
        finalbody: list[ast.stmt] = node.finalbody  # type: ignore[attr-defined]

        block_id = self._open(BlockKind.TRY, node.lineno, _end(node), body[0].lineno, node)
        self._walk_body(block_id, body)

        self.stack.append(block_id)
        try:
            last = _end(body[-1])
            for handler in handlers:
                handler_id = self._open(
                    BlockKind.EXCEPT, handler.lineno, _end(handler), handler.lineno, handler
                )
                self._walk_body(handler_id, handler.body)
                last = _end(handler)
            if orelse:
                self._else_clause(orelse, last)
                last = _end(orelse[-1])
            if finalbody:
                finally_line = find_clause_line(
                    self.source_lines, "finally", last, finalbody[0].lineno
                )
                finally_id = self._open(
                    BlockKind.FINALLY, finally_line, _end(finalbody[-1]), finalbody[0].lineno
                )
                self._walk_body(finally_id, finalbody)
        finally:
            self.stack.pop()

    visit_Try = _visit_try
    visit_TryStar = _visit_try

    def visit_Match(self, node: ast.Match) -> None:
        self.budget.step()
        block_id = self._open(BlockKind.MATCH, node.lineno, _end(node), node.lineno, node)
        self.stack.append(block_id)
        try:
            for case in node.cases:
                case_line = case.pattern.lineno
                case_id = self._open(
                    BlockKind.CASE, case_line, _end(case.body[-1]), case_line, case
                )
                self._walk_body(case_id, case.body)
        finally:
            self.stack.pop()

    # -- definitions -----------------------------------------------------

    def _visit_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        self.budget.step()
        block_id = self._open(
            BlockKind.FUNCTION_BODY, node.lineno, _end(node), _body_entry(node.body), node
        )
        self._walk_body(block_id, node.body)

    visit_FunctionDef = _visit_function
    visit_AsyncFunctionDef = _visit_function

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self.budget.step()
        block_id = self._open(
            BlockKind.CLASS_BODY, node.lineno, _end(node), _body_entry(node.body), node
        )
        self._walk_body(block_id, node.body)


def extract_blocks(
    tree: ast.Module,
    path: str,
    source_lines: list[str],
    budget: AnalysisBudget,
) -> tuple[BlockArena, dict[ast.AST, int]]:
    """Walk ``tree`` and return the unresolved arena plus node → block ids."""
    arena = BlockArena(path, len(source_lines))
    extractor = BlockExtractor(arena, source_lines, budget)
    extractor.visit(tree)
    return arena, extractor.block_of
