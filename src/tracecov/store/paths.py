"""Path canonicalisation and source reading for tracked files."""

from __future__ import annotations

import os
import tokenize
from functools import lru_cache

from tracecov.core.errors import SourceReadError, ValidationError


@lru_cache(maxsize=4096)
def _canonical(path: str) -> str:
    return os.path.normcase(os.path.realpath(os.path.abspath(path)))


def normalize_path(path: str | os.PathLike[str]) -> str:
    """Canonical key for ``path``: absolute, symlinks resolved, case-folded where the OS is.

    Raises:
        ValidationError: ``path`` is empty or None.
    """
    if path is None or not os.fspath(path):
        raise ValidationError.missing_path()
    return _canonical(os.fspath(path))


def read_file(path: str) -> str:
    """Read Python source honouring its PEP 263 encoding declaration.

    Raises:
        SourceReadError: The file is missing, unreadable, or not decodable.
    """
    try:
        with tokenize.open(path) as f:
            return f.read()
    except (OSError, SyntaxError, UnicodeDecodeError) as e:
        raise SourceReadError.unreadable(path, str(e)) from e
