"""Tests for condition graph extraction."""

from collections.abc import Callable

from tracecov.analysis import CodeMap, ConditionKind, conditions_containing
from tracecov.analysis.conditions import char_column


class TestConditionGraph:
    """Guards decompose into parent-before-child trees."""

    def test_given_boolean_guard_when_analyzed_then_components_decomposed(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        # Given
        source = "if a and not b:\n    pass\n"

        # When
        conditions = analyze(source).conditions

        # Then
        assert [(c.kind, c.expression, c.parent_id) for c in conditions] == [
            (ConditionKind.AND, "a and not b", None),
            (ConditionKind.SIMPLE, "a", 0),
            (ConditionKind.NOT, "not b", 0),
            (ConditionKind.SIMPLE, "b", 2),
        ]
        top = conditions[0]
        assert top.components == (1, 2)
        assert top.is_top_level
        assert top.true_range == (2, 2)
        assert top.block_id == 1
        assert top.header_line == 1
        assert conditions[1].true_range is None

    def test_given_chained_comparison_when_analyzed_then_pairwise_components(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        conditions = analyze("while 0 < x < 10:\n    x += 1\n").conditions
        assert conditions[0].kind is ConditionKind.COMPOUND
        assert [c.expression for c in conditions[1:]] == ["0 < x", "x < 10"]
        assert all(c.kind is ConditionKind.SIMPLE for c in conditions[1:])

    def test_given_constant_loop_when_analyzed_then_no_condition(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        assert analyze("while True:\n    break\n").conditions == ()

    def test_given_elif_when_analyzed_then_guard_belongs_to_elif_block(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze("if a:\n    pass\nelif b:\n    pass\n")
        elif_guard = code_map.conditions[1]
        assert elif_guard.header_line == 3
        assert code_map.block(elif_guard.block_id).start_line == 3

    def test_given_case_guard_when_analyzed_then_condition_on_case_block(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze("match v:\n    case int() if v > 1:\n        pass\n")
        (guard,) = code_map.conditions
        assert guard.expression == "v > 1"
        assert guard.header_line == 2
        assert code_map.block(guard.block_id).start_line == 2

    def test_given_multiline_guard_when_queried_then_every_line_reports_it(
        self, analyze: Callable[..., CodeMap]
    ) -> None:
        code_map = analyze("if (a\n        or b):\n    pass\n")
        assert conditions_containing(code_map, 1) == [0, 1]
        assert conditions_containing(code_map, 2) == [0, 2]
        assert conditions_containing(code_map, 3) == []


class TestCharColumn:
    def test_multibyte_prefix_converted_to_characters(self) -> None:
        assert char_column(["é = 1"], 1, 2) == 1

    def test_out_of_range_line_returns_byte_column(self) -> None:
        assert char_column([], 3, 7) == 7
