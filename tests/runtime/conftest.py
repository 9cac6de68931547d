"""Fixtures for running real scripts under a tracker."""

import sys
import textwrap
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from tracecov.config.models import TracecovConfig
from tracecov.runtime.tracker import CoverageTracker
from tracecov.store.paths import normalize_path


@pytest.fixture
def write_script(tmp_path: Path) -> Callable[..., Path]:
    """Write dedented source into the temp dir.

    Names must not look like test modules or the tracker skips them.
    """

    def _write(source: str, name: str = "script.py") -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_tracker(tmp_path: Path) -> Iterator[Callable[..., CoverageTracker]]:
    """Trackers that only measure files under the temp dir."""
    created: list[CoverageTracker] = []

    def _make(instrumentation: bool = False, **tracking: Any) -> CoverageTracker:
        tracking.setdefault("include", [f"{normalize_path(tmp_path)}/*"])
        config = TracecovConfig(tracking={"use_instrumentation": instrumentation, **tracking})
        tracker = CoverageTracker(config)
        created.append(tracker)
        return tracker

    yield _make

    for tracker in created:
        if tracker.running:
            tracker.reset()


@pytest.fixture(params=[False, True], ids=["debug_hook", "instrumentation"])
def instrumentation(request: pytest.FixtureRequest) -> bool:
    return bool(request.param)


@pytest.fixture
def isolated_modules(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Make the temp dir importable and forget the modules loaded from it."""
    monkeypatch.syspath_prepend(str(tmp_path))
    yield
    root = normalize_path(tmp_path)
    for name, module in list(sys.modules.items()):
        origin = getattr(module, "__file__", None)
        if origin and normalize_path(origin).startswith(root):
            sys.modules.pop(name, None)
