"""Shared fixtures; makes the checkout's src/ win over an installed tracecov."""

import sys
from pathlib import Path

_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# stale imports would bind an installed copy
for module_name in [m for m in sys.modules if m == "tracecov" or m.startswith("tracecov.")]:
    del sys.modules[module_name]

import textwrap  # noqa: E402
from collections.abc import Callable  # noqa: E402

import pytest  # noqa: E402

from tracecov.analysis import CodeMap, StaticAnalyzer  # noqa: E402


@pytest.fixture
def analyzer() -> StaticAnalyzer:
    return StaticAnalyzer()


@pytest.fixture
def analyze(analyzer: StaticAnalyzer) -> Callable[..., CodeMap]:
    """Analyze dedented source text under a fixed diagnostic path."""

    def _analyze(source: str, path: str = "sample.py") -> CodeMap:
        return analyzer.analyze(path, textwrap.dedent(source))

    return _analyze
