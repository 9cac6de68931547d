"""Condition graphs for control-flow guards.

Guards of ``if``, ``elif``, ``while`` and ``case ... if`` are decomposed
into a tree: ``and``/``or`` become AND/OR nodes with one component per
operand, ``not`` a NOT node around its operand, a chained comparison a
COMPOUND node over its pairwise comparisons. Everything else is a SIMPLE
leaf. Parents are allocated before their components, so a valid graph
always has ``parent_id < condition_id``.
"""

from __future__ import annotations

import ast
from dataclasses import dataclass, field

from tracecov.analysis.models import ConditionInfo, ConditionKind, SourceSpan
from tracecov.analysis.parser import AnalysisBudget
from tracecov.core.errors import ConsistencyError


def char_column(source_lines: list[str], line: int, byte_col: int) -> int:
    """Convert an AST UTF-8 byte offset into a character column."""
    if not 1 <= line <= len(source_lines):
        return byte_col
    encoded = source_lines[line - 1].encode("utf-8")
    return len(encoded[:byte_col].decode("utf-8", errors="replace"))


def node_span(source_lines: list[str], node: ast.AST) -> SourceSpan:
    line = node.lineno  # type: ignore[attr-defined]
    end_line = node.end_lineno or line  # type: ignore[attr-defined]
    return SourceSpan(
        line=line,
        col=char_column(source_lines, line, node.col_offset),  # type: ignore[attr-defined]
        end_line=end_line,
        end_col=char_column(source_lines, end_line, node.end_col_offset or 0),  # type: ignore[attr-defined]
    )


def span_text(source_lines: list[str], span: SourceSpan) -> str:
    if span.line == span.end_line:
        return source_lines[span.line - 1][span.col : span.end_col]
    parts = [source_lines[span.line - 1][span.col :]]
    parts.extend(source_lines[span.line : span.end_line - 1])
    parts.append(source_lines[span.end_line - 1][: span.end_col])
    return "\n".join(parts)


@dataclass(slots=True)
class PendingCondition:
    condition_id: int
    kind: ConditionKind
    span: SourceSpan
    parent_index: int | None
    block_id: int
    header_line: int
    true_range: tuple[int, int] | None
    node: ast.expr | None = None
    components: list[int] = field(default_factory=list)


class ConditionExtractor:
    """Allocate condition nodes for every guard in a module."""

    def __init__(self, path: str, source_lines: list[str], budget: AnalysisBudget) -> None:
        self.path = path
        self.source_lines = source_lines
        self.budget = budget
        self.slots: list[PendingCondition] = []
        # guard owner (If / While / match_case) -> top-level condition id
        self.guard_of: dict[ast.AST, int] = {}

    def _allocate(
        self,
        kind: ConditionKind,
        span: SourceSpan,
        parent: int | None,
        block_id: int,
        header_line: int,
        true_range: tuple[int, int] | None,
        node: ast.expr | None,
    ) -> int:
        condition_id = len(self.slots)
        self.slots.append(
            PendingCondition(
                condition_id, kind, span, parent, block_id, header_line, true_range, node
            )
        )
        if parent is not None:
            self.slots[parent].components.append(condition_id)
        return condition_id

    def _decompose(
        self,
        node: ast.expr,
        parent: int | None,
        block_id: int,
        header_line: int,
        true_range: tuple[int, int] | None,
    ) -> int:
        self.budget.step()
        span = node_span(self.source_lines, node)
        if isinstance(node, ast.BoolOp):
            kind = ConditionKind.AND if isinstance(node.op, ast.And) else ConditionKind.OR
            own = self._allocate(kind, span, parent, block_id, header_line, true_range, node)
            for value in node.values:
                self._decompose(value, own, block_id, header_line, None)
            return own
        if isinstance(node, ast.UnaryOp) and isinstance(node.op, ast.Not):
            own = self._allocate(
                ConditionKind.NOT, span, parent, block_id, header_line, true_range, node
            )
            self._decompose(node.operand, own, block_id, header_line, None)
            return own
        if isinstance(node, ast.Compare) and len(node.ops) > 1:
            own = self._allocate(
                ConditionKind.COMPOUND, span, parent, block_id, header_line, true_range, node
            )
            operands = [node.left, *node.comparators]
            for left, right in zip(operands, operands[1:]):
                pair = SourceSpan(
                    line=left.lineno,
                    col=char_column(self.source_lines, left.lineno, left.col_offset),
                    end_line=right.end_lineno or right.lineno,
                    end_col=char_column(
                        self.source_lines, right.end_lineno or right.lineno, right.end_col_offset or 0
                    ),
                )
                # Pairwise comparisons are not standalone expressions, so no node.
                self._allocate(
                    ConditionKind.SIMPLE, pair, own, block_id, header_line, None, None
                )
            return own
        return self._allocate(
            ConditionKind.SIMPLE, span, parent, block_id, header_line, true_range, node
        )

    def add_guard(
        self,
        owner: ast.AST,
        test: ast.expr,
        block_id: int,
        header_line: int,
        body: list[ast.stmt],
    ) -> int:
        first = body[0].lineno
        last = body[-1].end_lineno or body[-1].lineno
        top = self._decompose(test, None, block_id, header_line, (first, last))
        self.guard_of[owner] = top
        return top

    def resolve(self) -> tuple[ConditionInfo, ...]:
        """Validate the graph is acyclic and freeze it."""
        for slot in self.slots:
            parent = slot.parent_index
            if parent is None:
                continue
            if not 0 <= parent < len(self.slots):
                raise ConsistencyError.orphan(self.path, "condition", slot.condition_id, parent)
            if parent >= slot.condition_id:
                raise ConsistencyError.cycle(
                    self.path, "condition", [parent, slot.condition_id]
                )
        return tuple(
            ConditionInfo(
                condition_id=slot.condition_id,
                kind=slot.kind,
                span=slot.span,
                expression=span_text(self.source_lines, slot.span),
                parent_id=slot.parent_index,
                components=tuple(slot.components),
                block_id=slot.block_id,
                header_line=slot.header_line,
                true_range=slot.true_range,
            )
            for slot in self.slots
        )


def extract_conditions(
    tree: ast.Module,
    path: str,
    source_lines: list[str],
    block_of: dict[ast.AST, int],
    budget: AnalysisBudget,
) -> ConditionExtractor:
    """Decompose every guard in ``tree``; ``resolve()`` the result to freeze it."""
    extractor = ConditionExtractor(path, source_lines, budget)
    for node in ast.walk(tree):
        budget.step()
        if isinstance(node, ast.If) and node in block_of:
            extractor.add_guard(node, node.test, block_of[node], node.lineno, node.body)
        elif isinstance(node, ast.While) and node in block_of:
            if isinstance(node.test, ast.Constant):
                continue
            extractor.add_guard(node, node.test, block_of[node], node.lineno, node.body)
        elif isinstance(node, ast.match_case) and node.guard is not None and node in block_of:
            extractor.add_guard(
                node, node.guard, block_of[node], node.pattern.lineno, node.body
            )
    return extractor
