"""Static analysis: line classification, block tree, conditions, functions."""

from tracecov.analysis.analyzer import (
    StaticAnalyzer,
    blocks_containing,
    classify_line,
    conditions_containing,
    content_hash,
)
from tracecov.analysis.models import (
    BlockInfo,
    BlockKind,
    Classification,
    ClassificationStrategy,
    CodeMap,
    ConditionInfo,
    ConditionKind,
    FunctionInfo,
    LineInfo,
    SourceSpan,
)

__all__ = [
    "BlockInfo",
    "BlockKind",
    "Classification",
    "ClassificationStrategy",
    "CodeMap",
    "ConditionInfo",
    "ConditionKind",
    "FunctionInfo",
    "LineInfo",
    "SourceSpan",
    "StaticAnalyzer",
    "blocks_containing",
    "classify_line",
    "conditions_containing",
    "content_hash",
]
