"""Structured logging configuration using structlog.

Call setup_logging() once from the CLI callback before any log calls. Logs go
to stderr so stdout stays clean for rendered prompts and JSON output.
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(*, log_level: str = "WARNING", json_output: bool = False) -> None:
    """Configure structlog for the application.

    Args:
        log_level: Minimum log level to emit (DEBUG, INFO, WARNING, ERROR).
        json_output: If True, render logs as JSON lines instead of console output.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
