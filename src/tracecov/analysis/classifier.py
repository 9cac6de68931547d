"""AST-based line classification.

Tokens decide what a line *looks like* (blank, comment, inside a string);
statement nodes decide what *runs* on it. A line is executable when a
statement that compiles to bytecode starts on it, or when it heads a
clause whose match is evaluated at runtime (``except``, ``case``).
Continuation lines of a multi-line statement are never executable; they
map to the statement's first line.
"""

from __future__ import annotations

import ast
import tokenize

from tracecov.analysis.models import Classification, LineInfo
from tracecov.analysis.parser import AnalysisBudget

_COMPOUND_EXECUTABLE = (
    ast.If,
    ast.While,
    ast.For,
    ast.AsyncFor,
    ast.With,
    ast.AsyncWith,
    ast.Match,
)
_TRY_NODES: tuple[type[ast.AST], ...] = (ast.Try,) + (
    (ast.TryStar,) if hasattr(ast, "TryStar") else ()
)
_FUNCTION_NODES = (ast.FunctionDef, ast.AsyncFunctionDef)
_NO_BYTECODE = (ast.Global, ast.Nonlocal)

_STRING_START_TOKENS = {
    getattr(tokenize, name) for name in ("FSTRING_START", "TSTRING_START") if hasattr(tokenize, name)
}
_STRING_END_TOKENS = {
    getattr(tokenize, name) for name in ("FSTRING_END", "TSTRING_END") if hasattr(tokenize, name)
}
_KEYWORD_CLAUSES = ("else", "try", "finally")


def is_docstring_like(node: ast.stmt) -> bool:
    """A bare string statement: docstring or a string used as a block comment."""
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


class _TokenFacts:
    """Per-line facts gathered from the token stream."""

    def __init__(self, line_count: int) -> None:
        self.has_code = [False] * (line_count + 2)
        self.has_comment = [False] * (line_count + 2)
        self.inside_string = [False] * (line_count + 2)
        self.logical_start = list(range(line_count + 2))


def _collect_token_facts(tokens: list[tokenize.TokenInfo], line_count: int) -> _TokenFacts:
    facts = _TokenFacts(line_count)
    logical_start: int | None = None
    open_strings: list[int] = []

    def mark_string(first: int, last: int) -> None:
        for line in range(first + 1, min(last, line_count) + 1):
            facts.inside_string[line] = True

    for tok in tokens:
        kind = tok.type
        (srow, _), (erow, _) = tok.start, tok.end
        if kind in (tokenize.ENCODING, tokenize.ENDMARKER, tokenize.INDENT, tokenize.DEDENT):
            continue
        if kind == tokenize.NL:
            continue
        if kind == tokenize.COMMENT:
            if srow <= line_count:
                facts.has_comment[srow] = True
            continue
        if kind == tokenize.NEWLINE:
            if logical_start is not None:
                for line in range(logical_start, min(erow, line_count) + 1):
                    facts.logical_start[line] = logical_start
            logical_start = None
            continue

        if logical_start is None:
            logical_start = srow
        if kind in _STRING_START_TOKENS:
            open_strings.append(srow)
        elif kind in _STRING_END_TOKENS and open_strings:
            first = open_strings.pop()
            if erow > first:
                mark_string(first, erow)
        elif kind == tokenize.STRING and erow > srow:
            mark_string(srow, erow)
        if srow <= line_count:
            facts.has_code[srow] = True

    return facts


def _statement_starts(tree: ast.Module, budget: AnalysisBudget) -> dict[int, list[ast.AST]]:
    """Map line -> nodes that begin executing there (statements, decorators, handlers, cases)."""
    starts: dict[int, list[ast.AST]] = {}

    def add(line: int, node: ast.AST) -> None:
        starts.setdefault(line, []).append(node)

    for node in ast.walk(tree):
        budget.step()
        if isinstance(node, ast.stmt):
            add(node.lineno, node)
            decorators = getattr(node, "decorator_list", None) or []
            for decorator in decorators:
                add(decorator.lineno, decorator)
        elif isinstance(node, ast.ExceptHandler):
            add(node.lineno, node)
        elif isinstance(node, ast.match_case):
            add(node.pattern.lineno, node)
    return starts


def _multiline_bare_strings(tree: ast.Module) -> dict[int, int]:
    """First line -> last line of every bare string statement spanning lines."""
    spans: dict[int, int] = {}
    for node in ast.walk(tree):
        if isinstance(node, ast.stmt) and is_docstring_like(node):
            end = node.end_lineno or node.lineno
            if end > node.lineno:
                spans[node.lineno] = end
    return spans


def _classify_start(
    nodes: list[ast.AST],
    text: str,
) -> tuple[Classification, bool]:
    """Classification for a line on which ``nodes`` start."""
    first = nodes[0]
    stripped = text.lstrip()
    runs_code = any(
        not (isinstance(n, ast.stmt) and (is_docstring_like(n) or isinstance(n, _NO_BYTECODE)))
        and not isinstance(n, _TRY_NODES)
        for n in nodes
    )

    if isinstance(first, _FUNCTION_NODES):
        return Classification.FUNCTION_HEADER, True
    if isinstance(first, (*_COMPOUND_EXECUTABLE, ast.ExceptHandler, ast.match_case)):
        return Classification.CONTROL_FLOW_KEYWORD, True
    if isinstance(first, _TRY_NODES):
        return Classification.CONTROL_FLOW_KEYWORD, runs_code
    if stripped.startswith(_KEYWORD_CLAUSES) and _is_keyword_clause(stripped):
        # ``else: x = 1``: the clause keyword leads, a body statement follows
        return Classification.CONTROL_FLOW_KEYWORD, runs_code
    if isinstance(first, ast.stmt) and is_docstring_like(first) and len(nodes) == 1:
        return Classification.STRING, False
    return Classification.CODE, runs_code


def _is_keyword_clause(stripped: str) -> bool:
    for keyword in _KEYWORD_CLAUSES:
        if stripped.startswith(keyword):
            rest = stripped[len(keyword) :].lstrip()
            if rest.startswith(":"):
                return True
    return False


def classify_lines(
    tree: ast.Module,
    tokens: list[tokenize.TokenInfo],
    source_lines: list[str],
    budget: AnalysisBudget,
) -> list[LineInfo]:
    """Classify every physical line using the parsed tree and its tokens."""
    line_count = len(source_lines)
    facts = _collect_token_facts(tokens, line_count)
    starts = _statement_starts(tree, budget)
    bare_strings = _multiline_bare_strings(tree)

    comment_lines: set[int] = set()
    for first, last in bare_strings.items():
        comment_lines.update(range(first, last + 1))

    result: list[LineInfo] = []
    for number in range(1, line_count + 1):
        text = source_lines[number - 1]
        statement_line = facts.logical_start[number]

        opens_comment = number in bare_strings and len(starts.get(number, ())) == 1
        if opens_comment or (
            number in comment_lines and (number not in starts or facts.inside_string[number])
        ):
            result.append(
                LineInfo(number, Classification.MULTILINE_COMMENT, False, statement_line)
            )
            continue
        if facts.inside_string[number]:
            result.append(
                LineInfo(number, Classification.MULTILINE_STRING, False, statement_line)
            )
            continue

        nodes = starts.get(number)
        if nodes:
            kind, executable = _classify_start(nodes, text)
            columns = [n.col_offset for n in nodes if isinstance(n, ast.stmt)]
            if statement_line < number and columns:
                result.append(
                    LineInfo(
                        number,
                        kind,
                        executable,
                        number,
                        joined_to=statement_line,
                        start_col=min(columns),
                    )
                )
            else:
                result.append(LineInfo(number, kind, executable, number))
            continue

        stripped = text.strip()
        if not stripped:
            result.append(LineInfo(number, Classification.BLANK, False, statement_line))
        elif facts.has_comment[number] and not facts.has_code[number]:
            result.append(LineInfo(number, Classification.COMMENT, False, statement_line))
        elif _is_keyword_clause(stripped):
            result.append(
                LineInfo(number, Classification.CONTROL_FLOW_KEYWORD, False, statement_line)
            )
        else:
            # Continuation of a multi-line statement, or a lone closing bracket
            result.append(LineInfo(number, Classification.CODE, False, statement_line))

    return result
