"""Static structure of one source file.

A ``CodeMap`` is a pure function of the source text: it never refers to
the path it was read from, so files with identical content share one
cached map. Every field is frozen; runtime state lives in the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from tracecov.config.constants import ROOT_BLOCK_ID


class Classification(str, Enum):
    """What a physical line holds."""

    CODE = "code"
    COMMENT = "comment"
    MULTILINE_COMMENT = "multiline_comment"
    STRING = "string"
    MULTILINE_STRING = "multiline_string"
    CONTROL_FLOW_KEYWORD = "control_flow_keyword"
    FUNCTION_HEADER = "function_header"
    BLANK = "blank"


class BlockKind(str, Enum):
    """Syntactic region kinds.

    REPEAT is a guard-less ``while True:`` loop whose exit is decided in the
    body. DO is a ``with`` scope. ROOT is the per-file sentinel.
    """

    ROOT = "root"
    IF = "if"
    ELSE_IF = "else_if"
    ELSE = "else"
    WHILE = "while"
    REPEAT = "repeat"
    FOR = "for"
    FUNCTION_BODY = "function_body"
    DO = "do"
    TRY = "try"
    EXCEPT = "except"
    FINALLY = "finally"
    MATCH = "match"
    CASE = "case"
    CLASS_BODY = "class_body"


class ConditionKind(str, Enum):
    """Boolean guard decomposition.

    COMPOUND is a chained comparison (``a < b < c``) whose components are
    the pairwise comparisons.
    """

    SIMPLE = "simple"
    AND = "and"
    OR = "or"
    NOT = "not"
    COMPOUND = "compound"


class ClassificationStrategy(str, Enum):
    """How a file's lines were classified."""

    AST_BASED = "ast"
    HEURISTIC = "heuristic"


def block_evidence(kind: BlockKind, start_line: int, end_line: int, line: int) -> bool:
    """Whether an executed ``line`` proves a block ran.

    Any line after the header counts; the header itself only counts for a
    single-line block. Every line counts for the root.
    """
    if kind is BlockKind.ROOT:
        return True
    if line == start_line:
        return start_line == end_line
    return start_line < line <= end_line


@dataclass(frozen=True, slots=True)
class SourceSpan:
    """Character span; lines 1-based, columns 0-based character offsets."""

    line: int
    col: int
    end_line: int
    end_col: int

    def contains_line(self, line: int) -> bool:
        return self.line <= line <= self.end_line


@dataclass(frozen=True, slots=True)
class LineInfo:
    """Classification of one physical line."""

    number: int
    classification: Classification
    executable: bool
    statement_line: int  # first line of the logical statement this line belongs to
    block_ids: tuple[int, ...] = ()  # outermost first, root excluded
    condition_ids: tuple[int, ...] = ()
    # Set when a statement starts on a continuation line, such as a clause body
    # written after a header split over lines: the first line of the shared
    # logical line, and the UTF-8 column where the statement begins.
    joined_to: int | None = None
    start_col: int = 0


@dataclass(frozen=True, slots=True)
class BlockInfo:
    """A compound-statement region."""

    block_id: int
    kind: BlockKind
    start_line: int
    end_line: int
    parent_id: int | None
    children: tuple[int, ...] = ()
    entry_line: int | None = None  # first line that runs when the block is entered

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line

    def is_evidence(self, line: int) -> bool:
        return block_evidence(self.kind, self.start_line, self.end_line, line)


@dataclass(frozen=True, slots=True)
class ConditionInfo:
    """A boolean (sub-)expression of a control-flow guard."""

    condition_id: int
    kind: ConditionKind
    span: SourceSpan
    expression: str
    parent_id: int | None
    components: tuple[int, ...]
    block_id: int
    header_line: int  # line of the statement that owns the guard
    true_range: tuple[int, int] | None = None  # body lines run when a top-level guard holds

    @property
    def is_top_level(self) -> bool:
        return self.parent_id is None


@dataclass(frozen=True, slots=True)
class FunctionInfo:
    """A function or lambda."""

    function_id: int
    name: str
    start_line: int
    end_line: int
    code_line: int  # co_firstlineno of the compiled code object
    body_block_id: int | None = None
    is_lambda: bool = False


@dataclass(frozen=True, slots=True)
class CodeMap:
    """Static analysis result for one source text."""

    content_hash: str
    line_count: int
    strategy: ClassificationStrategy
    lines: tuple[LineInfo, ...]
    blocks: tuple[BlockInfo, ...]
    conditions: tuple[ConditionInfo, ...] = ()
    functions: tuple[FunctionInfo, ...] = ()
    fallback_reason: str | None = None
    _functions_by_code: dict[int, tuple[int, ...]] = field(
        default_factory=dict, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        index: dict[int, list[int]] = {}
        for fn in self.functions:
            index.setdefault(fn.code_line, []).append(fn.function_id)
        self._functions_by_code.update({k: tuple(v) for k, v in index.items()})

    def line(self, number: int) -> LineInfo:
        return self.lines[number - 1]

    def block(self, block_id: int) -> BlockInfo:
        return self.blocks[block_id]

    def condition(self, condition_id: int) -> ConditionInfo:
        return self.conditions[condition_id]

    def function(self, function_id: int) -> FunctionInfo:
        return self.functions[function_id]

    @property
    def root(self) -> BlockInfo:
        return self.blocks[ROOT_BLOCK_ID]

    @property
    def executable_lines(self) -> tuple[int, ...]:
        return tuple(info.number for info in self.lines if info.executable)

    def has_line(self, number: int) -> bool:
        return 1 <= number <= self.line_count

    def functions_for_code(self, code_line: int) -> tuple[int, ...]:
        """Function ids whose code object starts at ``code_line``."""
        return self._functions_by_code.get(code_line, ())

    def function_at(self, line: int) -> FunctionInfo | None:
        """Innermost function whose span contains ``line``."""
        best: FunctionInfo | None = None
        for fn in self.functions:
            if fn.start_line <= line <= fn.end_line and (
                best is None or fn.start_line >= best.start_line
            ):
                best = fn
        return best
