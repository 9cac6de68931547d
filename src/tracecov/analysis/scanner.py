"""Heuristic line classification.

Used when a file cannot be parsed or its analysis runs over budget. Lines
are scanned one at a time; a ``ScanContext`` carries open triple-quoted
strings, bracket depth and backslash continuations from one line to the
next, so a line inside a multi-line string is classified by the string it
sits in, never by its own text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from tracecov.analysis.models import Classification, LineInfo

_STRING_PREFIX = re.compile(r"(?i)(?:rb|br|fr|rf|b|r|u|f|t|tr|rt)?(\"\"\"|'''|\"|')")

_FUNCTION_HEADER = re.compile(r"^(?:async\s+)?def\s")
_CONTROL_EXECUTABLE = re.compile(
    r"^(?:if|elif|while|for|with|except|case|match|async\s+for|async\s+with)\b"
)
_CONTROL_SYNTAX = re.compile(r"^(?:else|try|finally)\s*:")
_DECLARATION = re.compile(r"^(?:global|nonlocal)\s")

_OPENERS = "([{"
_CLOSERS = ")]}"


@dataclass(slots=True)
class ScanContext:
    """State carried from line n to line n+1."""

    in_multiline_comment: bool = False
    in_multiline_string: bool = False
    quote: str = ""
    bracket_depth: int = 0
    backslash: bool = False
    statement_line: int = 0


def _close_quote(text: str, start: int, quote: str) -> int:
    """Index just past the closing ``quote`` at or after ``start``, or -1."""
    i = start
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if text.startswith(quote, i):
            return i + len(quote)
        i += 1
    return -1


def _scan_code(text: str, start: int, ctx: ScanContext) -> None:
    """Walk code characters from ``start``, updating brackets and open strings."""
    i = start
    ctx.backslash = False
    while i < len(text):
        ch = text[i]
        if ch == "#":
            return
        if ch == "\\" and text[i + 1 :].strip() == "":
            ctx.backslash = True
            return
        match = _STRING_PREFIX.match(text, i) if (ch.isalpha() or ch in "\"'") else None
        if match and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
            quote = match.group(1)
            end = _close_quote(text, match.end(), quote)
            if end == -1:
                if len(quote) == 3:
                    ctx.in_multiline_string = True
                    ctx.quote = quote
                return
            i = end
            continue
        if ch in _OPENERS:
            ctx.bracket_depth += 1
        elif ch in _CLOSERS and ctx.bracket_depth > 0:
            ctx.bracket_depth -= 1
        i += 1


def _classify_statement_start(stripped: str) -> tuple[Classification, bool]:
    if _FUNCTION_HEADER.match(stripped):
        return Classification.FUNCTION_HEADER, True
    if _CONTROL_SYNTAX.match(stripped):
        # ``else: x = 1`` still runs code on this line
        body = stripped.split(":", 1)[1].strip()
        executable = bool(body) and not body.startswith("#")
        return Classification.CONTROL_FLOW_KEYWORD, executable
    if _CONTROL_EXECUTABLE.match(stripped):
        return Classification.CONTROL_FLOW_KEYWORD, True
    if _DECLARATION.match(stripped):
        return Classification.CODE, False
    return Classification.CODE, True


def split_lines(source: str) -> list[str]:
    """Physical lines as the compiler counts them (only \\n, \\r\\n and \\r break lines)."""
    lines = source.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def scan_lines(source: str) -> list[LineInfo]:
    """Classify every physical line of ``source`` without parsing it."""
    ctx = ScanContext()
    result: list[LineInfo] = []

    for number, text in enumerate(split_lines(source), start=1):
        stripped = text.strip()

        if ctx.in_multiline_comment or ctx.in_multiline_string:
            kind = (
                Classification.MULTILINE_COMMENT
                if ctx.in_multiline_comment
                else Classification.MULTILINE_STRING
            )
            end = _close_quote(text, 0, ctx.quote)
            statement_line = ctx.statement_line if ctx.in_multiline_string else number
            if end != -1:
                was_comment = ctx.in_multiline_comment
                ctx.in_multiline_comment = False
                ctx.in_multiline_string = False
                if not was_comment:
                    _scan_code(text, end, ctx)
            result.append(LineInfo(number, kind, False, statement_line))
            continue

        if ctx.bracket_depth > 0 or ctx.backslash:
            if not stripped:
                kind = Classification.BLANK
            elif stripped.startswith("#"):
                kind = Classification.COMMENT
            else:
                kind = Classification.CODE
            _scan_code(text, 0, ctx)
            result.append(LineInfo(number, kind, False, ctx.statement_line))
            continue

        if not stripped:
            result.append(LineInfo(number, Classification.BLANK, False, number))
            continue
        if stripped.startswith("#"):
            result.append(LineInfo(number, Classification.COMMENT, False, number))
            continue

        ctx.statement_line = number
        bare = _STRING_PREFIX.match(stripped)
        if bare and len(bare.group(1)) == 3:
            quote = bare.group(1)
            end = _close_quote(stripped, bare.end(), quote)
            if end == -1:
                ctx.in_multiline_comment = True
                ctx.quote = quote
                result.append(LineInfo(number, Classification.MULTILINE_COMMENT, False, number))
                continue
            if not stripped[end:].strip() or stripped[end:].strip().startswith("#"):
                result.append(LineInfo(number, Classification.STRING, False, number))
                continue
        elif bare:
            end = _close_quote(stripped, bare.end(), bare.group(1))
            if end != -1 and (not stripped[end:].strip() or stripped[end:].strip().startswith("#")):
                result.append(LineInfo(number, Classification.STRING, False, number))
                continue

        kind, executable = _classify_statement_start(stripped)
        _scan_code(text, 0, ctx)
        result.append(LineInfo(number, kind, executable, number))

    return result


_DEF_NAME = re.compile(r"^(?:async\s+)?def\s+([A-Za-z_]\w*)")


def scan_functions(source_lines: list[str], lines: list[LineInfo]) -> list[tuple[str, int, int, int]]:
    """Best-effort ``(name, start, end, code_line)`` for each ``def`` by indentation."""
    found: list[tuple[str, int, int, int]] = []
    for info in lines:
        if info.classification is not Classification.FUNCTION_HEADER:
            continue
        text = source_lines[info.number - 1]
        match = _DEF_NAME.match(text.lstrip())
        if not match:
            continue
        indent = len(text) - len(text.lstrip())
        end = info.number
        for later in lines[info.number :]:
            if later.classification in (Classification.BLANK, Classification.COMMENT):
                continue
            later_text = source_lines[later.number - 1]
            if (
                later.classification is not Classification.MULTILINE_COMMENT
                and later.statement_line == later.number
            ):
                if len(later_text) - len(later_text.lstrip()) <= indent:
                    break
            end = later.number
        code_line = info.number
        while code_line > 1 and source_lines[code_line - 2].lstrip().startswith("@"):
            code_line -= 1
        found.append((match.group(1), info.number, end, code_line))
    return found
