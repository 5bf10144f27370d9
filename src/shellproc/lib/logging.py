"""Structlog configuration for shellproc entry points."""

from __future__ import annotations

import logging as std_logging
import sys
from typing import TextIO

import structlog


def _level_from_verbosity(verbosity: int) -> int:
    if verbosity <= 0:
        return std_logging.WARNING
    if verbosity == 1:
        return std_logging.INFO
    return std_logging.DEBUG


def _build_processors(json_mode: bool, stream: TextIO) -> list[structlog.typing.Processor]:
    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if json_mode:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        isatty = getattr(stream, "isatty", None)
        colors = bool(isatty and isatty())
        processors.append(structlog.dev.ConsoleRenderer(colors=colors))
    return processors


def configure_logging(
    json_mode: bool = False,
    verbosity: int = 0,
    *,
    stream: TextIO | None = None,
) -> None:
    """Send structlog and stdlib logging to ``stream`` (stderr by default).

    Child output owns stdout, so log lines never go there. ``verbosity`` 0 shows
    warnings, 1 adds info, 2 and above add per-process debug events.
    """

    target = stream if stream is not None else sys.stderr
    level = _level_from_verbosity(verbosity)

    handler = std_logging.StreamHandler(target)
    handler.setFormatter(std_logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    std_logging.basicConfig(level=level, handlers=[handler], force=True)

    structlog.configure(
        processors=_build_processors(json_mode, target),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=target),
        cache_logger_on_first_use=False,
    )
