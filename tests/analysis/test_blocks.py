"""Tests for block extraction and arena resolution."""

from collections.abc import Callable

import pytest

from tracecov.analysis import BlockKind, CodeMap, blocks_containing
from tracecov.analysis.blocks import BlockArena, find_clause_line
from tracecov.analysis.models import block_evidence
from tracecov.core.errors import ConsistencyError, ErrorCode

K = BlockKind


def shape(code_map: CodeMap) -> list[tuple[BlockKind, int, int, int | None]]:
    return [(b.kind, b.start_line, b.end_line, b.parent_id) for b in code_map.blocks]


class TestBlockTree:
    """Compound statements become nested blocks."""

    def test_given_if_elif_else_when_analyzed_then_chain_nests(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        """Each clause of an elif chain nests in the previous one and spans to its end."""
        # Given
        source = """\
        def f(x):
            if x > 0:
                y = 1
            elif x < 0:
                y = 2
            else:
                y = 3
            return y
        """

        # When
        code_map = analyze(source)

        # Then
        assert shape(code_map) == [
            (K.ROOT, 1, 8, None),
            (K.FUNCTION_BODY, 1, 8, 0),
            (K.IF, 2, 7, 1),
            (K.ELSE_IF, 4, 7, 2),
            (K.ELSE, 6, 7, 3),
        ]
        assert code_map.block(1).entry_line == 2
        assert code_map.block(4).entry_line == 7
        assert code_map.root.children == (1,)

    def test_given_loops_and_with_when_analyzed_then_kinds_assigned(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        source = """\
        for i in range(3):
            pass
        else:
            pass
        while True:
            break
        while n:
            n -= 1
        with open(p) as fh:
            pass
        """
        assert shape(analyze(source))[1:] == [
            (K.FOR, 1, 4, 0),
            (K.ELSE, 3, 4, 1),
            (K.REPEAT, 5, 6, 0),
            (K.WHILE, 7, 8, 0),
            (K.DO, 9, 10, 0),
        ]

    def test_given_try_statement_when_analyzed_then_clauses_are_children(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        source = """\
        try:
            a = 1
        except ValueError:
            a = 2
        else:
            a = 3
        finally:
            a = 4
        """
        code_map = analyze(source)
        assert shape(code_map)[1:] == [
            (K.TRY, 1, 8, 0),
            (K.EXCEPT, 3, 4, 1),
            (K.ELSE, 5, 6, 1),
            (K.FINALLY, 7, 8, 1),
        ]
        assert code_map.block(1).entry_line == 2
        assert code_map.block(4).entry_line == 8

    def test_given_match_when_analyzed_then_case_per_clause(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        source = """\
        match cmd:
            case "a":
                x = 1
            case _ if flag:
                x = 2
        """
        assert shape(analyze(source))[1:] == [
            (K.MATCH, 1, 5, 0),
            (K.CASE, 2, 3, 1),
            (K.CASE, 4, 5, 1),
        ]

    def test_given_class_with_docstring_when_analyzed_then_entry_skips_docstring(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        source = '''\
        class A:
            """Doc."""
            x = 1
            def m(self):
                return self.x
        '''
        code_map = analyze(source)
        assert shape(code_map)[1:] == [(K.CLASS_BODY, 1, 5, 0), (K.FUNCTION_BODY, 4, 5, 1)]
        assert code_map.block(1).entry_line == 3
        assert code_map.block(2).entry_line == 5

    def test_given_nested_line_when_queried_then_blocks_outermost_first(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze("def f():\n    for i in x:\n        if i:\n            pass\n")
        assert blocks_containing(code_map, 4) == [1, 2, 3]
        assert blocks_containing(code_map, 1) == [1]


class TestBlockEvidence:
    """Which executed lines prove a block ran."""

    @pytest.mark.parametrize(
        ("kind", "start", "end", "line", "expected"),
        [
            (K.IF, 2, 7, 2, False),  # the header runs whether or not the body does
            (K.IF, 2, 7, 3, True),
            (K.IF, 2, 7, 7, True),
            (K.IF, 2, 7, 8, False),
            (K.IF, 4, 4, 4, True),  # one-line block: header is the only line
            (K.ROOT, 1, 10, 1, True),
        ],
    )
    def test_evidence_rule(
        self, kind: BlockKind, start: int, end: int, line: int, expected: bool
    ) -> None:
        assert block_evidence(kind, start, end, line) is expected


class TestBlockArena:
    """Deferred parent links are validated on resolve."""

    def test_given_unknown_parent_when_resolved_then_relinked_to_root(self) -> None:
        # Given
        arena = BlockArena("m.py", 10)
        arena.allocate(K.IF, 2, 3, None)

        # When
        blocks = arena.resolve([])

        # Then
        assert blocks[1].parent_id == 0
        assert [issue.code for issue in arena.issues] == [ErrorCode.CONSISTENCY_ORPHAN]

    def test_given_parent_not_containing_when_resolved_then_walks_up(self) -> None:
        arena = BlockArena("m.py", 10)
        outer = arena.allocate(K.FOR, 1, 3, 0)
        arena.allocate(K.IF, 5, 6, outer)

        blocks = arena.resolve([])

        assert blocks[2].parent_id == 0
        assert blocks[0].children == (1, 2)
        assert arena.issues[0].code == ErrorCode.CONSISTENCY_CONTAINMENT

    def test_given_parent_cycle_when_resolved_then_raises(self) -> None:
        arena = BlockArena("m.py", 10)
        arena.allocate(K.IF, 1, 2, 2)
        arena.allocate(K.IF, 1, 2, 1)

        with pytest.raises(ConsistencyError) as exc_info:
            arena.resolve([])
        assert exc_info.value.details["ids"] == [1, 2]


class TestFindClauseLine:
    def test_finds_keyword_line(self) -> None:
        lines = ["if x:", "    a", "else:", "    b"]
        assert find_clause_line(lines, "else", 2, 4) == 3

    def test_missing_keyword_falls_back_to_body_line(self) -> None:
        lines = ["if x:", "    a", "elsewhere = 1"]
        assert find_clause_line(lines, "else", 1, 3) == 3
