"""Source-to-source instrumentation.

``instrument`` rewrites Python source so that it reports its own execution
through the module global ``__tracecov__`` (a ``FileProbe``). Two kinds
of edits are made, both computed from the AST and the file's ``CodeMap``:

Probe statements, inserted on their own lines at the indentation of the
statement they precede::

    __tracecov__.call(FUNCTION_ID)     function entered
    __tracecov__.enter(BLOCK_ID)       block entered (counted on its next evidence line)
    __tracecov__.line(LINE)            executable line about to run

Inline wrappers, spliced into expressions::

    __tracecov__.guard(ID, (test)[, LINE[, BLOCK]])   top-level guard outcome
    __tracecov__.cond(ID, (operand))                  and/or/not component outcome
    __tracecov__.hit(LINE, (ExcType))                 except clause tested
    __tracecov__.called(FUNCTION_ID, (body))          lambda called

``elif`` and ``while`` headers cannot be preceded by a statement, so their
guard also records the header line (and the ``elif`` block entry).

A clause body written on its header line (``if x: y()``) is moved to a
new line one level deeper so probes can precede it. Probes never precede
a docstring or a ``from __future__`` import; those get theirs appended
after them with ``;``.

The original line numbers appear only as probe arguments, so instrumented
text depends on content alone. The ``SourceMap`` maps every instrumented
line back to the original line it came from.
"""

from __future__ import annotations

import ast
import warnings
from dataclasses import dataclass, field

from tracecov.analysis.blocks import find_clause_line
from tracecov.analysis.classifier import is_docstring_like
from tracecov.analysis.conditions import char_column, node_span
from tracecov.analysis.models import BlockKind, CodeMap, ConditionKind, SourceSpan
from tracecov.analysis.scanner import split_lines
from tracecov.config.constants import PROBE_GLOBAL
from tracecov.core.errors import ParseError
from tracecov.runtime.instrumentation.sourcemap import SourceMap

# Probe order at one insertion point. Entries precede the line probe so a
# one-line block counts its entry on its own header line.
CALL = 0
BODY_ENTER = 1
STATEMENT_ENTER = 2
LINE = 3

# Inline insert order at one column: closing suffixes before opening prefixes
_SUFFIX = 0
_PREFIX = 1
_LAMBDA_DEPTH = 1_000
_AFTER_DEPTH = 1_000_000

_BODY_FIELDS = frozenset(("body", "orelse", "finalbody", "handlers", "cases"))

P = PROBE_GLOBAL


def _leading_ws(text: str) -> str:
    return text[: len(text) - len(text.lstrip())]


def _is_future_import(node: ast.stmt) -> bool:
    return isinstance(node, ast.ImportFrom) and node.module == "__future__"


def _start_line(node: ast.stmt) -> int:
    decorators = getattr(node, "decorator_list", None)
    if decorators:
        return min(d.lineno for d in decorators)
    return node.lineno


def _end_line(node: ast.AST) -> int:
    return getattr(node, "end_lineno", None) or node.lineno  # type: ignore[attr-defined]


@dataclass(slots=True)
class _Point:
    """Probe statements for one position in the original text.

    ``before``: own lines ahead of ``line``. ``split``: the body starting
    at ``col`` moves to a new line and the probes go between. ``after``:
    appended with ``;`` at ``col``.
    """

    line: int
    col: int
    mode: str
    indent: str = ""
    probes: list[tuple[int, int, str]] = field(default_factory=list)

    def ordered(self) -> list[str]:
        return [text for _, _, text in sorted(self.probes)]


class _Instrumenter:
    def __init__(self, source: str, code_map: CodeMap) -> None:
        self.source_lines = split_lines(source)
        self.code_map = code_map
        self.block_ids = {(b.kind, b.start_line): b.block_id for b in code_map.blocks}
        self.guard_ids = {
            (c.header_line, c.block_id): c.condition_id
            for c in code_map.conditions
            if c.parent_id is None
        }
        self.points: dict[tuple[int, int, str], _Point] = {}
        self.inserts: dict[int, list[tuple[int, int, int, int, str]]] = {}
        self.lambda_of: dict[ast.Lambda, int] = {}
        self._seq = 0

    # -- bookkeeping -------------------------------------------------------

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _executable(self, line: int) -> bool:
        return 1 <= line <= self.code_map.line_count and self.code_map.line(line).executable

    def _add(self, point: _Point, category: int, text: str) -> None:
        point.probes.append((category, self._next(), text))

    def _line_probe(self, point: _Point, line: int) -> None:
        if self._executable(line):
            self._add(point, LINE, f"{P}.line({line})")

    def _enter_probe(self, point: _Point, category: int, kind: BlockKind, line: int) -> int:
        block_id = self.block_ids.get((kind, line), -1)
        if block_id >= 0:
            self._add(point, category, f"{P}.enter({block_id})")
        return block_id

    def _point_at(self, line: int, col: int, mode: str, indent: str = "") -> _Point:
        key = (line, col, mode)
        point = self.points.get(key)
        if point is None:
            point = self.points[key] = _Point(line, col, mode, indent)
        return point

    def _point(self, stmt: ast.stmt, clause_line: int | None = None) -> _Point:
        """Insertion point ahead of ``stmt`` (a clause body's first statement may split)."""
        line = _start_line(stmt)
        text = self.source_lines[line - 1]
        col = char_column(self.source_lines, line, stmt.col_offset)
        prefix = text[:col]
        if prefix.strip() and clause_line is not None:
            indent = _leading_ws(self.source_lines[clause_line - 1]) + "    "
            return self._point_at(line, col, "split", indent)
        return self._point_at(line, col, "before", prefix)

    def _after(self, stmt: ast.stmt) -> _Point:
        line = _end_line(stmt)
        col = char_column(self.source_lines, line, stmt.end_col_offset or 0)
        return self._point_at(line, col, "after")

    def _insert(self, line: int, col: int, order: int, depth: int, text: str) -> None:
        self.inserts.setdefault(line, []).append((col, order, depth, self._next(), text))

    def _wrap(self, span: SourceSpan, prefix: str, suffix: str, depth: int) -> None:
        self._insert(span.line, span.col, _PREFIX, depth, prefix)
        self._insert(span.end_line, span.end_col, _SUFFIX, -depth, suffix)

    # -- lambdas and conditions ------------------------------------------

    def _match_lambdas(self, tree: ast.Module) -> None:
        # Lambdas sharing a line range pair up with function ids left to right.
        nodes: dict[tuple[int, int], list[ast.Lambda]] = {}
        for node in ast.walk(tree):
            if isinstance(node, ast.Lambda):
                nodes.setdefault((node.lineno, _end_line(node)), []).append(node)
        ids: dict[tuple[int, int], list[int]] = {}
        for function in self.code_map.functions:
            if function.is_lambda:
                ids.setdefault((function.start_line, function.end_line), []).append(
                    function.function_id
                )
        for key, group in nodes.items():
            group.sort(key=lambda n: (n.lineno, n.col_offset))
            for node, function_id in zip(group, ids.get(key, ())):
                self.lambda_of[node] = function_id

    def _lambdas(self, node: ast.AST, depth: int = 0) -> None:
        if isinstance(node, ast.stmt):
            return
        if isinstance(node, ast.Lambda):
            function_id = self.lambda_of.get(node)
            if function_id is not None:
                self._wrap(
                    node_span(self.source_lines, node.body),
                    f"{P}.called({function_id}, (",
                    "))",
                    _LAMBDA_DEPTH + depth,
                )
            depth += 1
        for child in ast.iter_child_nodes(node):
            self._lambdas(child, depth)

    def _expressions(self, node: ast.AST) -> None:
        """Instrument lambdas in every part of ``node`` except nested bodies."""
        for name, value in ast.iter_fields(node):
            if name in _BODY_FIELDS:
                continue
            for child in value if isinstance(value, list) else (value,):
                if isinstance(child, ast.AST):
                    self._lambdas(child)

    def _components(self) -> None:
        conditions = self.code_map.conditions
        for condition in conditions:
            if condition.parent_id is None:
                continue
            if conditions[condition.parent_id].kind is ConditionKind.COMPOUND:
                # pairwise comparisons are not expressions of their own
                continue
            depth = 0
            parent: int | None = condition.parent_id
            while parent is not None:
                depth += 1
                parent = conditions[parent].parent_id
            self._wrap(condition.span, f"{P}.cond({condition.condition_id}, (", "))", depth)

    def _guard(self, test: ast.expr, header_line: int, block_id: int, mode: str) -> None:
        condition_id = self.guard_ids.get((header_line, block_id), -1)
        if mode == "elif":
            suffix = f"), {header_line}, {block_id})"
        elif mode == "while":
            suffix = f"), {header_line})"
        elif condition_id < 0:
            return
        else:
            suffix = "))"
        self._wrap(node_span(self.source_lines, test), f"{P}.guard({condition_id}, (", suffix, 0)

    # -- statements --------------------------------------------------------

    def module(self, tree: ast.Module) -> None:
        self._match_lambdas(tree)
        self._components()
        body = tree.body
        if not body:
            return

        prologue = 0
        if is_docstring_like(body[0]):
            prologue = 1
        while prologue < len(body) and _is_future_import(body[prologue]):
            prologue += 1
        if prologue == 0:
            self._body(body)
            return

        last = body[prologue - 1]
        rest = body[prologue:]
        if rest and _start_line(rest[0]) > _end_line(last):
            point = self._point(rest[0])
        else:
            point = self._after(last)
        for stmt in body[:prologue]:
            self._line_probe(point, stmt.lineno)
        self._body(body[:prologue], line_probes=False)
        self._body(rest, previous_end=_end_line(last))

    def _body(
        self,
        body: list[ast.stmt],
        clause_line: int | None = None,
        first_line_probe: bool = True,
        line_probes: bool = True,
        previous_end: int | None = None,
    ) -> None:
        for index, stmt in enumerate(body):
            start = _start_line(stmt)
            if previous_end is not None and start == previous_end:
                # ``a; b``: one logical line, one probe
                self._expressions(stmt)
                previous_end = _end_line(stmt)
                continue
            previous_end = _end_line(stmt)
            point = self._point(stmt, clause_line if index == 0 else None)
            probe = line_probes and (index > 0 or first_line_probe)
            self._statement(stmt, point, probe)

    def _clause(
        self,
        body: list[ast.stmt],
        clause_line: int,
        entry: list[tuple[int, str]] | None = None,
        inline_line_probe: bool = False,
        docstring: bool = False,
    ) -> None:
        """A clause body; ``entry`` probes run before its first statement.

        ``inline_line_probe`` says whether a body sharing the header line
        still needs its own line probe (the header did not record it). A
        body on a continuation line of a multi-line header always does.
        """
        first = body[0]
        inline = bool(
            self.source_lines[first.lineno - 1][
                : char_column(self.source_lines, first.lineno, first.col_offset)
            ].strip()
        )
        if docstring and is_docstring_like(first):
            if len(body) > 1 and _start_line(body[1]) > _end_line(first):
                point = self._point(body[1])
            else:
                point = self._after(first)
        else:
            point = self._point(first, clause_line)
        for category, text in entry or ():
            self._add(point, category, text)
        own_line = not inline or first.lineno != clause_line
        self._body(body, clause_line, first_line_probe=inline_line_probe or own_line)

    def _else(self, orelse: list[ast.stmt], after: int) -> None:
        if not orelse:
            return
        else_line = find_clause_line(self.source_lines, "else", after, orelse[0].lineno)
        block_id = self.block_ids.get((BlockKind.ELSE, else_line), -1)
        entry = [(BODY_ENTER, f"{P}.enter({block_id})")] if block_id >= 0 else []
        self._clause(orelse, else_line, entry, inline_line_probe=True)

    def _statement(self, stmt: ast.stmt, point: _Point, line_probe: bool) -> None:
        if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            self._definition(stmt, point)
        elif isinstance(stmt, ast.If):
            self._if(stmt, point)
        elif isinstance(stmt, ast.While):
            self._while(stmt, point)
        elif isinstance(stmt, (ast.For, ast.AsyncFor)):
            self._line_probe(point, stmt.lineno)
            self._enter_probe(point, STATEMENT_ENTER, BlockKind.FOR, stmt.lineno)
            self._expressions(stmt)
            self._clause(stmt.body, stmt.lineno, inline_line_probe=True)
            self._else(stmt.orelse, _end_line(stmt.body[-1]))
        elif isinstance(stmt, (ast.With, ast.AsyncWith)):
            self._line_probe(point, stmt.lineno)
            self._enter_probe(point, STATEMENT_ENTER, BlockKind.DO, stmt.lineno)
            self._expressions(stmt)
            self._clause(stmt.body, stmt.lineno)
        elif isinstance(stmt, ast.Try) or type(stmt).__name__ == "TryStar":
            self._try(stmt, point)
        elif isinstance(stmt, ast.Match):
            self._match(stmt, point)
        else:
            if line_probe:
                self._line_probe(point, stmt.lineno)
            self._expressions(stmt)

    def _definition(
        self, node: ast.FunctionDef | ast.AsyncFunctionDef | ast.ClassDef, point: _Point
    ) -> None:
        for line in sorted({d.lineno for d in node.decorator_list} | {node.lineno}):
            self._line_probe(point, line)
        self._expressions(node)

        entry: list[tuple[int, str]] = []
        if isinstance(node, ast.ClassDef):
            kind = BlockKind.CLASS_BODY
        else:
            kind = BlockKind.FUNCTION_BODY
            code_line = _start_line(node)
            for function_id in self.code_map.functions_for_code(code_line):
                function = self.code_map.function(function_id)
                if not function.is_lambda and function.start_line == node.lineno:
                    entry.append((CALL, f"{P}.call({function_id})"))
                    break
        block_id = self.block_ids.get((kind, node.lineno), -1)
        if block_id >= 0:
            entry.append((BODY_ENTER, f"{P}.enter({block_id})"))
        self._clause(node.body, node.lineno, entry, inline_line_probe=True, docstring=True)

    def _if(self, node: ast.If, point: _Point) -> None:
        line = node.lineno
        self._line_probe(point, line)
        block_id = self._enter_probe(point, STATEMENT_ENTER, BlockKind.IF, line)
        self._guard(node.test, line, block_id, "if")
        self._expressions(node)
        self._clause(node.body, line)
        self._orelse_chain(node)

    def _orelse_chain(self, node: ast.If) -> None:
        orelse = node.orelse
        if not orelse:
            return
        first = orelse[0]
        text = self.source_lines[first.lineno - 1].lstrip()
        if len(orelse) == 1 and isinstance(first, ast.If) and text.startswith("elif"):
            line = first.lineno
            block_id = self.block_ids.get((BlockKind.ELSE_IF, line), -1)
            self._guard(first.test, line, block_id, "elif")
            self._expressions(first)
            self._clause(first.body, line)
            self._orelse_chain(first)
        else:
            self._else(orelse, _end_line(node.body[-1]))

    def _while(self, node: ast.While, point: _Point) -> None:
        line = node.lineno
        constant = isinstance(node.test, ast.Constant)
        kind = BlockKind.REPEAT if constant and node.test.value else BlockKind.WHILE  # type: ignore[attr-defined]
        block_id = self._enter_probe(point, STATEMENT_ENTER, kind, line)
        if constant:
            self._line_probe(point, line)
        else:
            self._guard(node.test, line, block_id, "while")
        self._expressions(node)
        self._clause(node.body, line)
        self._else(node.orelse, _end_line(node.body[-1]))

    def _try(self, node: ast.stmt, point: _Point) -> None:
        body: list[ast.stmt] = node.body  # type: ignore[attr-defined]
        handlers: list[ast.ExceptHandler] = node.handlers  # type: ignore[attr-defined]
        orelse: list[ast.stmt] = node.orelse  # type: ignore[attr-defined]
        finalbody: list[ast.stmt] = node.finalbody  # type: ignore[attr-defined]

        self._enter_probe(point, STATEMENT_ENTER, BlockKind.TRY, node.lineno)
        self._clause(body, node.lineno, inline_line_probe=True)
        last = _end_line(body[-1])
        for handler in handlers:
            line = handler.lineno
            entry: list[tuple[int, str]] = []
            block_id = self.block_ids.get((BlockKind.EXCEPT, line), -1)
            if block_id >= 0:
                entry.append((BODY_ENTER, f"{P}.enter({block_id})"))
            if handler.type is None:
                if self._executable(line):
                    entry.append((LINE, f"{P}.line({line})"))
            else:
                self._wrap(
                    node_span(self.source_lines, handler.type),
                    f"{P}.hit({line}, (",
                    "))",
                    0,
                )
            self._expressions(handler)
            self._clause(handler.body, line, entry)
            last = _end_line(handler)
        if orelse:
            self._else(orelse, last)
            last = _end_line(orelse[-1])
        if finalbody:
            finally_line = find_clause_line(self.source_lines, "finally", last, finalbody[0].lineno)
            block_id = self.block_ids.get((BlockKind.FINALLY, finally_line), -1)
            entry = [(BODY_ENTER, f"{P}.enter({block_id})")] if block_id >= 0 else []
            self._clause(finalbody, finally_line, entry, inline_line_probe=True)

    def _match(self, node: ast.Match, point: _Point) -> None:
        self._line_probe(point, node.lineno)
        self._enter_probe(point, STATEMENT_ENTER, BlockKind.MATCH, node.lineno)
        self._expressions(node)
        for case in node.cases:
            line = case.pattern.lineno
            block_id = self.block_ids.get((BlockKind.CASE, line), -1)
            if case.guard is not None:
                self._guard(case.guard, line, block_id, "case")
                self._lambdas(case.guard)
            entry: list[tuple[int, str]] = []
            if block_id >= 0:
                entry.append((BODY_ENTER, f"{P}.enter({block_id})"))
            if self._executable(line):
                entry.append((LINE, f"{P}.line({line})"))
            self._clause(case.body, line, entry)

    # -- output ------------------------------------------------------------

    def render(self) -> tuple[str, SourceMap]:
        before: dict[int, list[_Point]] = {}
        splits: dict[int, _Point] = {}
        for point in self.points.values():
            if not point.probes:
                continue
            if point.mode == "before":
                before.setdefault(point.line, []).append(point)
            elif point.mode == "split":
                splits[point.line] = point
            else:
                text = "".join(f"; {probe}" for probe in point.ordered())
                self._insert(point.line, point.col, _SUFFIX, -_AFTER_DEPTH, text)

        out: list[str] = []
        source_map = SourceMap()

        def emit(text: str, original: int, carries_text: bool) -> None:
            out.append(text)
            source_map.add(len(out), original, carries_text=carries_text)

        for number, text in enumerate(self.source_lines, start=1):
            for point in sorted(before.get(number, ()), key=lambda p: p.col):
                for probe in point.ordered():
                    emit(point.indent + probe, number, False)
            inserts = sorted(self.inserts.get(number, ()))
            split = splits.get(number)
            if split is None:
                emit(_splice(text, inserts), number, True)
                continue
            head = [i for i in inserts if i[0] < split.col]
            tail = [(i[0] - split.col, *i[1:]) for i in inserts if i[0] >= split.col]
            emit(_splice(text[: split.col], head).rstrip(), number, True)
            for probe in split.ordered():
                emit(split.indent + probe, number, False)
            emit(split.indent + _splice(text[split.col :], tail), number, True)

        return "\n".join(out) + ("\n" if out else ""), source_map


def _splice(text: str, inserts: list[tuple[int, int, int, int, str]]) -> str:
    if not inserts:
        return text
    pieces: list[str] = []
    last = 0
    for col, _order, _depth, _seq, insert in inserts:
        pieces.append(text[last:col])
        pieces.append(insert)
        last = col
    pieces.append(text[last:])
    return "".join(pieces)


def instrument(source: str, code_map: CodeMap) -> tuple[str, SourceMap]:
    """Rewrite ``source`` to report its execution; ``code_map`` must describe it.

    Raises:
        ParseError: ``source`` does not parse.
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", SyntaxWarning)
            tree = ast.parse(source)
    except (SyntaxError, ValueError, RecursionError) as e:
        raise ParseError.syntax("<instrument>", str(e)) from e
    instrumenter = _Instrumenter(source, code_map)
    instrumenter.module(tree)
    return instrumenter.render()
