"""Structured logging for coverage sessions.

Events go through structlog into stdlib ``logging`` handlers, one handler
per configured output, each with its own level and renderer (console or
JSON). While a session is running every event carries its ``session_id``,
so output from one start/stop cycle can be picked out of a shared log.

Collectors call into here only on failure paths; per-line tracking never
logs.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from tracecov.config.models import LoggingConfig, LogOutputConfig

_session_id: ContextVar[str | None] = ContextVar("tracecov_session_id", default=None)


def get_session_id() -> str | None:
    return _session_id.get()


def set_session_id(session_id: str | None = None) -> str:
    """Bind ``session_id`` (or a fresh 12-hex-digit id) to the current context."""
    sid = session_id or uuid4().hex[:12]
    _session_id.set(sid)
    return sid


def clear_session_id() -> None:
    _session_id.set(None)


def _add_session_id(
    _logger: structlog.types.WrappedLogger,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    sid = get_session_id()
    if sid is not None:
        event_dict["session_id"] = sid
    return event_dict


def _level(name: str | None, default: int) -> int:
    if not name:
        return default
    if name.upper() == "WARN":
        return logging.WARNING
    return logging.getLevelNamesMapping().get(name.upper(), default)


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Install tracecov's logging setup on the root logger.

    ``config`` wins when given; otherwise a single stderr output is built
    from ``json_format`` and ``level``. Existing root handlers are replaced,
    so calling this again reconfigures cleanly.
    """
    from tracecov.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level,
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )
    root_level = _level(config.level, logging.INFO)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
        _add_session_id,  # type: ignore[list-item]
    ]
    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # level changes must reach loggers created before reconfiguration
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    for output in config.outputs:
        root.addHandler(_build_handler(output, pre_chain, _level(output.level, root_level)))


def _build_handler(
    output: LogOutputConfig,
    pre_chain: list[structlog.types.Processor],
    level: int,
) -> logging.Handler:
    handler: logging.Handler
    stream = {"stderr": sys.stderr, "stdout": sys.stdout}.get(output.destination)
    if stream is not None:
        handler = logging.StreamHandler(stream)
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")

    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=stream is not None and stream.isatty(),
            pad_event_to=0,
            pad_level=False,
        )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)
    )
    handler.setLevel(level)
    return handler


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """A structlog logger, bound with ``logger=name`` when a name is given."""
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    return logger  # type: ignore[no-any-return]
