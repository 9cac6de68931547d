"""Instrumentation collector: rewritten source reporting through probes."""

from tracecov.runtime.instrumentation.cache import InstrumentationCache, InstrumentedSource
from tracecov.runtime.instrumentation.loader import (
    InstrumentationCollector,
    InstrumentingFinder,
    InstrumentingLoader,
    run_path,
)
from tracecov.runtime.instrumentation.probe import FileProbe
from tracecov.runtime.instrumentation.sourcemap import SourceMap
from tracecov.runtime.instrumentation.transformer import instrument

__all__ = [
    "FileProbe",
    "InstrumentationCache",
    "InstrumentationCollector",
    "InstrumentedSource",
    "InstrumentingFinder",
    "InstrumentingLoader",
    "SourceMap",
    "instrument",
    "run_path",
]
