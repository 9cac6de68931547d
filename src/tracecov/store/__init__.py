"""Coverage data store: the only writer of runtime coverage state."""

from tracecov.store.models import (
    BlockState,
    ConditionState,
    FileView,
    FunctionState,
    LineState,
    SourceFile,
)
from tracecov.store.paths import normalize_path, read_file
from tracecov.store.store import CoverageStore

__all__ = [
    "BlockState",
    "ConditionState",
    "CoverageStore",
    "FileView",
    "FunctionState",
    "LineState",
    "SourceFile",
    "normalize_path",
    "read_file",
]
