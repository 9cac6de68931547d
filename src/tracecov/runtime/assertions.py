"""Bridge from an assertion library to ``CoverageTracker.mark_covered``.

Wrap an assertion callable with ``covers(tracker)``. Each time it returns
without raising, the nearest calling line in a tracked file is marked
covered::

    check = covers(tracker)(check)
    check(result == 42)  # this line becomes covered when it passes
"""

from __future__ import annotations

import functools
import sys
from collections.abc import Callable
from types import FrameType
from typing import TYPE_CHECKING, Any, TypeVar

from tracecov.core.logging import get_logger

if TYPE_CHECKING:
    from tracecov.runtime.tracker import CoverageTracker

log = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

DEFAULT_MAX_DEPTH = 10


def mark_caller_covered(
    tracker: CoverageTracker, frame: FrameType | None, max_depth: int = DEFAULT_MAX_DEPTH
) -> tuple[str, int] | None:
    """Mark the first line in a tracked file found walking out from ``frame``.

    Returns the ``(key, line)`` marked, or None when no tracked frame lies
    within ``max_depth`` frames.
    """
    depth = 0
    while frame is not None and depth < max_depth:
        key = tracker.resolve(frame.f_code.co_filename)
        if key is not None:
            line = frame.f_lineno
            if tracker.mark_covered(key, line):
                log.debug("assertion_covered", path=key, line=line)
            return key, line
        frame = frame.f_back
        depth += 1
    return None


def covers(tracker: CoverageTracker, max_depth: int = DEFAULT_MAX_DEPTH) -> Callable[[F], F]:
    """Decorator: a passing call to the wrapped assertion covers its call site."""

    def decorate(assertion: F) -> F:
        @functools.wraps(assertion)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            result = assertion(*args, **kwargs)
            if tracker.running:
                mark_caller_covered(tracker, sys._getframe(1), max_depth)
            return result

        return wrapper  # type: ignore[return-value]

    return decorate
