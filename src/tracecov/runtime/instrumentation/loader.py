"""Import hook that loads tracked modules instrumented.

``InstrumentationCollector.install()`` puts an ``InstrumentingFinder`` at
the front of ``sys.meta_path``. For a module whose source file the tracker
tracks, the finder hands back the regular path-based spec with an
``InstrumentingLoader`` in place of the ``SourceFileLoader``. That loader
compiles the instrumented text (never touching ``__pycache__``) and binds
the file's ``FileProbe`` into the module namespace before executing it.

Instrumented code is compiled under the original file name with every AST
position moved back to its original line, so tracebacks, ``inspect`` and
the debugger all see the original numbering.

Modules imported before ``install()`` keep running uninstrumented.
"""

from __future__ import annotations

import ast
import importlib
import importlib.abc
import importlib.machinery
import importlib.util
import os
import runpy
import sys
import types
from collections.abc import Sequence
from types import CodeType
from typing import TYPE_CHECKING, Any

from tracecov.config.constants import PROBE_GLOBAL
from tracecov.core.errors import ParseError
from tracecov.core.logging import get_logger
from tracecov.runtime.instrumentation.cache import InstrumentedSource
from tracecov.runtime.instrumentation.probe import FileProbe
from tracecov.runtime.instrumentation.sourcemap import SourceMap
from tracecov.runtime.instrumentation.transformer import instrument

if TYPE_CHECKING:
    from tracecov.runtime.tracker import CoverageTracker

log = get_logger(__name__)

_MISSING = object()


def relocate(tree: ast.AST, source_map: SourceMap) -> ast.AST:
    """Move every node of an instrumented tree back to its original lines."""
    for node in ast.walk(tree):
        lineno = getattr(node, "lineno", None)
        if lineno is None:
            continue
        end_lineno = getattr(node, "end_lineno", None) or lineno
        start = source_map.original_line(lineno) or lineno
        end = source_map.original_line(end_lineno) or end_lineno
        node.lineno = start  # type: ignore[attr-defined]
        node.end_lineno = max(start, end)  # type: ignore[attr-defined]
        if start == node.end_lineno and lineno != end_lineno:
            # a split line collapsed: keep the column range ordered
            col = node.col_offset  # type: ignore[attr-defined]
            if (node.end_col_offset or 0) < col:  # type: ignore[attr-defined]
                node.end_col_offset = col  # type: ignore[attr-defined]
    return tree


def compile_instrumented(entry: InstrumentedSource, filename: str) -> CodeType:
    tree = ast.parse(entry.text, filename)
    return compile(relocate(tree, entry.source_map), filename, "exec", dont_inherit=True)


def compile_tracked(tracker: CoverageTracker, key: str, filename: str) -> CodeType:
    """Code object for a tracked file, instrumented when its source parses.

    A file that does not parse is compiled as-is so the import fails with
    the interpreter's own ``SyntaxError``.
    """
    source = tracker.store.get_source(key)
    code_map = tracker.code_map(key)
    cache = tracker.instrumentation_cache
    entry = cache.get(code_map.content_hash)
    if entry is None:
        try:
            text, source_map = instrument(source, code_map)
        except ParseError as e:
            log.warning("instrumentation_skipped", path=key, reason=e.message)
            return compile(source, filename, "exec", dont_inherit=True)
        entry = InstrumentedSource(code_map.content_hash, text, source_map)
        cache.put(entry)
        log.debug("instrumented", path=key, lines=code_map.line_count)
    return compile_instrumented(entry, filename)


class InstrumentingLoader(importlib.machinery.SourceFileLoader):
    def __init__(self, fullname: str, path: str, tracker: CoverageTracker, key: str) -> None:
        super().__init__(fullname, path)
        self.tracker = tracker
        self.key = key

    def get_code(self, fullname: str) -> CodeType:
        return compile_tracked(self.tracker, self.key, self.path)

    def exec_module(self, module: types.ModuleType) -> None:
        module.__dict__[PROBE_GLOBAL] = FileProbe(self.tracker, self.key)
        super().exec_module(module)


class InstrumentingFinder(importlib.abc.MetaPathFinder):
    """Path-based finder that swaps in ``InstrumentingLoader`` for tracked files."""

    def __init__(self, tracker: CoverageTracker) -> None:
        self.tracker = tracker

    def find_spec(
        self,
        fullname: str,
        path: Sequence[str] | None = None,
        target: types.ModuleType | None = None,
    ) -> importlib.machinery.ModuleSpec | None:
        spec = importlib.machinery.PathFinder.find_spec(fullname, path, target)
        if spec is None or spec.origin is None:
            return None
        if type(spec.loader) is not importlib.machinery.SourceFileLoader:
            return None
        key = self.tracker.resolve(spec.origin)
        if key is None:
            return None
        spec.loader = InstrumentingLoader(fullname, spec.origin, self.tracker, key)
        return spec


class InstrumentationCollector:
    """Collector that instruments modules as they are imported."""

    name = "instrumentation"

    def __init__(self, tracker: CoverageTracker) -> None:
        self.tracker = tracker
        self.finder = InstrumentingFinder(tracker)

    @property
    def installed(self) -> bool:
        return self.finder in sys.meta_path

    def install(self) -> None:
        if self.installed:
            return
        sys.meta_path.insert(0, self.finder)
        importlib.invalidate_caches()

    def uninstall(self) -> None:
        if self.installed:
            sys.meta_path.remove(self.finder)


def run_path(
    tracker: CoverageTracker, path: str | os.PathLike[str], run_name: str = "__main__"
) -> dict[str, Any]:
    """Execute a script instrumented and return its globals.

    Like ``runpy.run_path`` the script runs in a fresh module registered
    under ``run_name`` for the duration. A script the tracker does not
    track runs through ``runpy`` unchanged.
    """
    filename = os.fspath(path)
    key = tracker.resolve(filename)
    if key is None:
        return runpy.run_path(filename, run_name=run_name)

    code = compile_tracked(tracker, key, filename)
    module = types.ModuleType(run_name)
    module.__file__ = filename
    module.__dict__[PROBE_GLOBAL] = FileProbe(tracker, key)
    saved = sys.modules.get(run_name, _MISSING)
    sys.modules[run_name] = module
    try:
        exec(code, module.__dict__)
    finally:
        if saved is _MISSING:
            sys.modules.pop(run_name, None)
        else:
            sys.modules[run_name] = saved  # type: ignore[assignment]
    return dict(module.__dict__)
