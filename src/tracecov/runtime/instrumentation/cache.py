"""Instrumented sources keyed by the content hash of the original."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any

from tracecov.config.constants import DEFAULT_ANALYSIS_CACHE_SIZE
from tracecov.core.logging import get_logger
from tracecov.runtime.instrumentation.sourcemap import SourceMap

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class InstrumentedSource:
    content_hash: str
    text: str
    source_map: SourceMap


class InstrumentationCache:
    """LRU of instrumented text.

    Instrumented text never names its file, so every copy of one source
    shares an entry.
    """

    def __init__(self, max_entries: int = DEFAULT_ANALYSIS_CACHE_SIZE) -> None:
        self.max_entries = max_entries
        self._entries: OrderedDict[str, InstrumentedSource] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, content_hash: str) -> InstrumentedSource | None:
        entry = self._entries.get(content_hash)
        if entry is None:
            self.misses += 1
            return None
        self._entries.move_to_end(content_hash)
        self.hits += 1
        return entry

    def put(self, entry: InstrumentedSource) -> None:
        self._entries[entry.content_hash] = entry
        self._entries.move_to_end(entry.content_hash)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("instrumentation_evicted", content_hash=evicted[:12])

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict[str, Any]:
        total = self.hits + self.misses
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "hit_ratio": self.hits / total if total else 0.0,
        }
