"""Static analyzer facade.

``StaticAnalyzer.analyze`` never raises for malformed input: a parse
failure, a spent budget or a broken block graph drops the file to the
heuristic scanner, and the reason is recorded on the ``CodeMap``.
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from dataclasses import replace

from tracecov.analysis.blocks import extract_blocks
from tracecov.analysis.classifier import classify_lines
from tracecov.analysis.conditions import extract_conditions
from tracecov.analysis.functions import collect_functions
from tracecov.analysis.models import (
    BlockInfo,
    BlockKind,
    Classification,
    ClassificationStrategy,
    CodeMap,
    ConditionInfo,
    FunctionInfo,
    LineInfo,
)
from tracecov.analysis.parser import AnalysisBudget, parse_source, tokenize_source
from tracecov.analysis.scanner import scan_functions, scan_lines, split_lines
from tracecov.config.constants import ROOT_BLOCK_ID
from tracecov.config.models import AnalysisConfig
from tracecov.core.errors import (
    ConsistencyError,
    ErrorCode,
    ParseError,
    TracecovError,
    ValidationError,
)
from tracecov.core.logging import get_logger

log = get_logger(__name__)


def content_hash(source: str) -> str:
    return hashlib.sha256(source.encode("utf-8", errors="surrogatepass")).hexdigest()


def _fallback_reason(error: TracecovError) -> str:
    # Path-free so identical content still yields an identical map.
    if error.code == ErrorCode.PARSE_BUDGET_EXCEEDED:
        return f"{error.error_name}: {error.details['budget']} > {error.details['limit']}"
    reason = error.details.get("reason")
    if reason is None and error.code == ErrorCode.CONSISTENCY_CYCLE:
        reason = f"block cycle {error.details['ids']}"
    return f"{error.error_name}: {reason}" if reason else error.error_name


def _attach_ownership(
    lines: list[LineInfo],
    blocks: tuple[BlockInfo, ...],
    conditions: tuple[ConditionInfo, ...],
) -> tuple[LineInfo, ...]:
    owners: list[list[int]] = [[] for _ in lines]
    for block in blocks:
        if block.block_id == ROOT_BLOCK_ID:
            continue
        for number in range(block.start_line, min(block.end_line, len(lines)) + 1):
            owners[number - 1].append(block.block_id)

    guards: list[list[int]] = [[] for _ in lines]
    for condition in conditions:
        span = condition.span
        for number in range(span.line, min(span.end_line, len(lines)) + 1):
            guards[number - 1].append(condition.condition_id)

    return tuple(
        replace(info, block_ids=tuple(owners[i]), condition_ids=tuple(guards[i]))
        for i, info in enumerate(lines)
    )


class StaticAnalyzer:
    """Builds ``CodeMap`` objects and caches them by content hash.

    The cache is an LRU bounded by ``AnalysisConfig.cache_size``. Because a
    ``CodeMap`` depends only on the text, two paths with the same content
    share one map object.
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self.config = config or AnalysisConfig()
        self._cache: OrderedDict[str, CodeMap] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def analyze(self, path: str, source: str) -> CodeMap:
        """Return the code map for ``source``; ``path`` is used for diagnostics only."""
        if not path:
            raise ValidationError.missing_path()
        key = content_hash(source)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            self.hits += 1
            return cached

        self.misses += 1
        code_map = self._build(path, source, key)
        self._cache[key] = code_map
        if len(self._cache) > self.config.cache_size:
            self._cache.popitem(last=False)
        return code_map

    def clear_cache(self) -> None:
        self._cache.clear()

    def _build(self, path: str, source: str, key: str) -> CodeMap:
        source_lines = split_lines(source)
        if not self.config.use_static_analysis:
            return self._heuristic(source, source_lines, key, "static analysis disabled")

        budget = AnalysisBudget(
            path, self.config.max_analysis_nodes, self.config.max_analysis_time_ms
        )
        try:
            tree = parse_source(source, budget)
            tokens = tokenize_source(source, budget)
            lines = classify_lines(tree, tokens, source_lines, budget)
            arena, block_of = extract_blocks(tree, path, source_lines, budget)
            blocks = arena.resolve(lines)
            conditions = extract_conditions(
                tree, path, source_lines, block_of, budget
            ).resolve()
            functions = collect_functions(tree, block_of, budget)
        except RecursionError:
            e = ParseError.syntax(path, "source too deeply nested for analysis")
            log.info("analysis_fallback", path=path, error=e.error_name, reason=e.message)
            return self._heuristic(source, source_lines, key, _fallback_reason(e))
        except (ParseError, ConsistencyError) as e:
            log.info(
                "analysis_fallback",
                path=path,
                error=e.error_name,
                reason=e.message,
            )
            return self._heuristic(source, source_lines, key, _fallback_reason(e))

        for issue in arena.issues:
            log.warning("block_relinked", error=issue.error_name, **issue.details)

        log.debug(
            "analysis_complete",
            path=path,
            lines=len(lines),
            blocks=len(blocks),
            conditions=len(conditions),
            functions=len(functions),
            nodes=budget.nodes_seen,
        )
        return CodeMap(
            content_hash=key,
            line_count=len(source_lines),
            strategy=ClassificationStrategy.AST_BASED,
            lines=_attach_ownership(lines, blocks, conditions),
            blocks=blocks,
            conditions=conditions,
            functions=functions,
        )

    def _heuristic(
        self,
        source: str,
        source_lines: list[str],
        key: str,
        reason: str,
    ) -> CodeMap:
        lines = scan_lines(source)
        root = BlockInfo(ROOT_BLOCK_ID, BlockKind.ROOT, 1, max(len(source_lines), 1), None)
        functions = tuple(
            FunctionInfo(
                function_id=index,
                name=name,
                start_line=start,
                end_line=end,
                code_line=code_line,
            )
            for index, (name, start, end, code_line) in enumerate(
                scan_functions(source_lines, lines)
            )
        )
        return CodeMap(
            content_hash=key,
            line_count=len(source_lines),
            strategy=ClassificationStrategy.HEURISTIC,
            lines=tuple(lines),
            blocks=(root,),
            functions=functions,
            fallback_reason=reason,
        )


def _check_line(code_map: CodeMap, line: int) -> None:
    if not code_map.has_line(line):
        raise ValidationError.line_out_of_range(
            code_map.content_hash[:12], line, code_map.line_count
        )


def classify_line(code_map: CodeMap, line: int) -> Classification:
    _check_line(code_map, line)
    return code_map.line(line).classification


def blocks_containing(code_map: CodeMap, line: int) -> list[int]:
    """Block ids whose range holds ``line``, innermost last (root excluded)."""
    _check_line(code_map, line)
    return list(code_map.line(line).block_ids)


def conditions_containing(code_map: CodeMap, line: int) -> list[int]:
    _check_line(code_map, line)
    return list(code_map.line(line).condition_ids)
