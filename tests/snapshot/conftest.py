"""Fixtures building snapshots from a real store."""

from collections.abc import Callable
from pathlib import Path

import pytest

from tracecov.snapshot import CoverageSnapshot, build_snapshot
from tracecov.store import CoverageStore

SOURCE = """\
def f(x):
    if x:
        return 1
    return 2

f(True)
"""
# executable lines 1, 2, 3, 4, 6; blocks 0 root, 1 body, 2 if; condition 0


@pytest.fixture
def module_path(tmp_path: Path) -> str:
    return str(tmp_path / "module.py")


@pytest.fixture
def session_snapshot(module_path: str) -> Callable[..., CoverageSnapshot]:
    """Snapshot of a store where ``executed`` lines ran ``count`` times each."""

    def _snapshot(
        executed: tuple[int, ...] = (),
        covered: tuple[int, ...] = (),
        count: int = 1,
    ) -> CoverageSnapshot:
        store = CoverageStore()
        store.initialize_file(module_path, SOURCE)
        for line in executed:
            store.set_line_executed(module_path, line, count)
            store.propagate_to_blocks(module_path, line)
        for line in covered:
            store.set_line_covered(module_path, line)
        return build_snapshot(store)

    return _snapshot
