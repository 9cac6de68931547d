"""Tests for AST-based line classification."""

from collections.abc import Callable

import pytest

from tracecov.analysis import Classification, CodeMap

C = Classification

SOURCE = '''\
"""Module doc."""
import os


def f(a,
      b):
    """Doc
    more."""
    global g
    if a:  # check
        return b
    else:
        return [
            a,
        ]
'''


class TestClassifyLines:
    """Statement nodes decide executability; tokens decide appearance."""

    @pytest.mark.parametrize(
        ("number", "classification", "executable", "statement_line"),
        [
            (1, C.STRING, False, 1),
            (2, C.CODE, True, 2),
            (3, C.BLANK, False, 3),
            (5, C.FUNCTION_HEADER, True, 5),
            (6, C.CODE, False, 5),
            (7, C.MULTILINE_COMMENT, False, 7),
            (8, C.MULTILINE_COMMENT, False, 7),
            (9, C.CODE, False, 9),
            (10, C.CONTROL_FLOW_KEYWORD, True, 10),
            (11, C.CODE, True, 11),
            (12, C.CONTROL_FLOW_KEYWORD, False, 12),
            (13, C.CODE, True, 13),
            (14, C.CODE, False, 13),
            (15, C.CODE, False, 13),
        ],
    )
    def test_given_function_source_when_classified_then_matches(
        self,
        analyze: Callable[..., CodeMap],
        number: int,
        classification: Classification,
        executable: bool,
        statement_line: int,
    ) -> None:
        info = analyze(SOURCE).line(number)
        assert info.classification is classification
        assert info.executable is executable
        assert info.statement_line == statement_line

    def test_given_try_clauses_when_classified_then_only_handlers_execute(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        """``try:`` and ``finally:`` are syntax; ``except`` matches at runtime."""
        # Given
        source = """\
        try:
            run()
        except ValueError:
            pass
        finally:
            done()
        """

        # When
        code_map = analyze(source)

        # Then
        assert code_map.executable_lines == (2, 3, 4, 6)
        assert code_map.line(1).classification is C.CONTROL_FLOW_KEYWORD

    def test_given_inline_else_body_when_classified_then_executable(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze("if flag:\n    x = 1\nelse: x = 2\n")
        info = code_map.line(3)
        assert info.classification is C.CONTROL_FLOW_KEYWORD
        assert info.executable is True

    def test_given_match_when_classified_then_case_lines_execute(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze('match cmd:\n    case "go":\n        x = 1\n    case _:\n        x = 2\n')
        assert code_map.executable_lines == (1, 2, 3, 4, 5)

    def test_given_decorator_when_classified_then_decorator_line_executes(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze("@wrap\ndef f():\n    pass\n")
        assert code_map.line(1).executable is True
        assert code_map.line(2).classification is C.FUNCTION_HEADER

    def test_given_multiline_string_value_when_classified_then_inner_line_is_string(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze('x = """a\nb"""\ny = 1\n')
        assert code_map.line(2).classification is C.MULTILINE_STRING
        assert code_map.line(2).statement_line == 1
        assert code_map.executable_lines == (1, 3)

    def test_given_comment_only_line_when_classified_then_comment(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze("x = 1\n    # indented comment\ny = 2\n")
        assert code_map.line(2).classification is C.COMMENT

    def test_given_body_on_header_continuation_when_classified_then_joined_to_header(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        # Given
        source = "if (a and\n        b): hit = 1\nx = 1\n"

        # When
        code_map = analyze(source)

        # Then
        body = code_map.line(2)
        assert (body.executable, body.statement_line) == (True, 2)
        assert (body.joined_to, body.start_col) == (1, 12)
        assert code_map.line(3).joined_to is None
