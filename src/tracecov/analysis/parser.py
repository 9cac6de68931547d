"""Bounded parsing of Python source.

``ast.parse`` itself cannot be interrupted, so the budgets are enforced
around it. Before parsing, the source length is held against the node
budget (``SOURCE_CHARS_PER_NODE`` characters per node), so an oversized
file is refused without being parsed. Afterwards the node count and the
wall clock are checked once parsing returns and again while later stages
walk the tree.
"""

from __future__ import annotations

import ast
import io
import time
import tokenize
import warnings

from tracecov.config.constants import SOURCE_CHARS_PER_NODE, TIME_CHECK_INTERVAL
from tracecov.core.errors import ParseError


class AnalysisBudget:
    """Node-count and wall-clock limits shared by every analysis stage."""

    __slots__ = ("path", "max_nodes", "max_time_ms", "_deadline", "_nodes", "_steps")

    def __init__(self, path: str, max_nodes: int, max_time_ms: int) -> None:
        self.path = path
        self.max_nodes = max_nodes
        self.max_time_ms = max_time_ms
        self._deadline = time.perf_counter() + max_time_ms / 1000.0
        self._nodes = 0
        self._steps = 0

    @property
    def nodes_seen(self) -> int:
        return self._nodes

    def check_time(self) -> None:
        if time.perf_counter() > self._deadline:
            raise ParseError.budget_exceeded(self.path, "time_ms", self.max_time_ms)

    def tick(self, count: int = 1) -> None:
        """Account for visited nodes; raise once either budget is spent."""
        before = self._nodes
        self._nodes += count
        if self._nodes > self.max_nodes:
            raise ParseError.budget_exceeded(self.path, "nodes", self.max_nodes)
        if before // TIME_CHECK_INTERVAL != self._nodes // TIME_CHECK_INTERVAL:
            self.check_time()

    def step(self) -> None:
        """Progress marker for stages that revisit already-counted nodes."""
        self._steps += 1
        if self._steps % TIME_CHECK_INTERVAL == 0:
            self.check_time()


def parse_source(source: str, budget: AnalysisBudget) -> ast.Module:
    """Parse ``source`` into a module AST within ``budget``.

    Raises:
        ParseError: Syntax errors, parser recursion limits, or a spent budget.
    """
    max_chars = budget.max_nodes * SOURCE_CHARS_PER_NODE
    if len(source) > max_chars:
        raise ParseError.budget_exceeded(budget.path, "source_chars", max_chars)
    try:
        with warnings.catch_warnings():
            # Invalid escape sequences and similar are the program's business.
            warnings.simplefilter("ignore", SyntaxWarning)
            warnings.simplefilter("ignore", DeprecationWarning)
            tree = ast.parse(source, filename=budget.path, type_comments=False)
    except SyntaxError as e:
        raise ParseError.syntax(budget.path, e.msg or "invalid syntax", e.lineno) from e
    except (RecursionError, MemoryError) as e:
        raise ParseError.syntax(budget.path, f"source too deeply nested ({type(e).__name__})") from e
    except ValueError as e:
        # Null bytes in source
        raise ParseError.syntax(budget.path, str(e)) from e

    budget.check_time()
    for _node in ast.walk(tree):
        budget.tick()
    return tree


def tokenize_source(source: str, budget: AnalysisBudget) -> list[tokenize.TokenInfo]:
    """Tokenize ``source``; tokenizer errors become ``ParseError``."""
    try:
        tokens = list(tokenize.generate_tokens(io.StringIO(source).readline))
    except (tokenize.TokenError, SyntaxError) as e:
        raise ParseError.syntax(budget.path, f"tokenizer: {e}") from e
    budget.check_time()
    return tokens
