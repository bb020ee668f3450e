"""Diagnostic channel for the library itself.

Delivery failures are reported here rather than through return values, because
the fire-and-forget emission API has nowhere else to put them. The library
never configures structlog on import; host applications that already use
structlog keep their own pipeline. Until structlog is configured, diagnostics
go to stderr so they never mix with records written to stdout.
"""

from __future__ import annotations

import sys
from typing import Any, TextIO

import structlog

LOGGER_NAME = "eventlog"


def _processors() -> list:
    return [
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"]),
    ]


def get_logger(**initial_values: Any) -> Any:
    """Return the library's structlog logger (resolved lazily on each call).

    Uses the host's structlog configuration when there is one, otherwise a
    logger printing to the current `sys.stderr`.
    """
    if structlog.is_configured():
        return structlog.get_logger(LOGGER_NAME, **initial_values)
    return structlog.wrap_logger(
        structlog.PrintLogger(file=sys.stderr),
        processors=_processors(),
        **initial_values,
    )


def setup_diagnostics(stream: TextIO | None = None, *, force: bool = False) -> bool:
    """Route structlog output to `stream` (stderr by default).

    Does nothing when structlog has already been configured by the host
    application, unless `force` is set. Returns whether configuration was applied.
    """
    if structlog.is_configured() and not force:
        return False

    structlog.configure(
        processors=_processors(),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )
    return True
