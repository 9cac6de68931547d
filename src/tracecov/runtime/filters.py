"""Which files a session tracks.

Glob patterns use ``fnmatch`` against the normalised, ``/``-separated
path. The standard library is never tracked.
"""

from __future__ import annotations

import fnmatch
import os
import sysconfig
from functools import lru_cache

from tracecov.config.models import TrackingConfig

_TEST_DIRS = frozenset(("tests", "test", "spec"))


def _posix(path: str) -> str:
    return path.replace("\\", "/")


@lru_cache(maxsize=1)
def _stdlib_prefixes() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    prefixes = {
        _posix(os.path.normcase(os.path.realpath(paths[name]))) + "/"
        for name in ("stdlib", "platstdlib")
        if paths.get(name)
    }
    return tuple(sorted(prefixes))


def matches_any(path: str, patterns: list[str]) -> bool:
    """Check a path against glob patterns, with ``**/`` matching any depth."""
    posix = _posix(path)
    for pattern in patterns:
        if fnmatch.fnmatch(posix, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatch(posix, "*/" + pattern[3:]):
            return True
    return False


def is_test_file(path: str) -> bool:
    """Test modules by naming convention or location.

    ``test_*.py``, ``*_test.py``, ``conftest.py`` and anything below a
    ``tests``, ``test`` or ``spec`` directory.
    """
    parts = _posix(path).split("/")
    name = parts[-1]
    if name == "conftest.py":
        return True
    if name.endswith(".py") and (name.startswith("test_") or name.endswith("_test.py")):
        return True
    return any(part in _TEST_DIRS for part in parts[:-1])


def is_stdlib(path: str) -> bool:
    posix = _posix(path)
    return any(posix.startswith(prefix) for prefix in _stdlib_prefixes())


def should_track(key: str, config: TrackingConfig) -> bool:
    """Decide whether a normalised path is measured.

    Order: pseudo-files (``<string>``, ``<frozen ...>``) and the standard
    library are always skipped, then ``exclude`` wins over ``include``,
    then test modules are skipped when ``exclude_tests`` is set.
    """
    if not key or key.startswith("<"):
        return False
    if is_stdlib(key):
        return False
    if matches_any(key, config.exclude):
        return False
    if config.include and not matches_any(key, config.include):
        return False
    return not (config.exclude_tests and is_test_file(key))
