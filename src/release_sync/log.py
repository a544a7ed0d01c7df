"""Structured logging for release_sync.

stdlib logging is the backend (stderr), structlog renders the events. Values
bound with `run_context` are attached to every event of the current task,
so all lines of a sync carry the repository they belong to.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog


if TYPE_CHECKING:
    from collections.abc import Iterator


LogLevel = int | str

LOGGER_PREFIX = "release_sync"


def _to_level(level: LogLevel) -> int:
    return getattr(logging, level.upper()) if isinstance(level, str) else level


def configure_logging(
    level: LogLevel = "INFO",
    *,
    use_colors: bool | None = None,
    json_logs: bool = False,
) -> None:
    """Configure structlog and standard logging.

    Args:
        level: Logging level
        use_colors: Whether to use colored output (auto-detected if None)
        json_logs: Render one JSON object per line
    """
    logging.basicConfig(
        level=_to_level(level),
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
        format="%(message)s",
    )
    # third-party clients log every request at INFO
    for noisy in ("httpx", "httpcore", "fsspec"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if use_colors is None:
        use_colors = sys.stderr.isatty() and not json_logs

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=use_colors))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, log_level: LogLevel | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger for the given module name.

    Args:
        name: Module name, prefixed with 'release_sync.' unless it already is
        log_level: The logging level to set for the logger

    Returns:
        A structlog BoundLogger instance
    """
    name = name.removeprefix(f"{LOGGER_PREFIX}.")
    full_name = f"{LOGGER_PREFIX}.{name}"
    if log_level is not None:
        logging.getLogger(full_name).setLevel(_to_level(log_level))
    return structlog.get_logger(full_name)


@contextmanager
def run_context(**values: Any) -> Iterator[None]:
    """Attach key/value pairs to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(**values):
        yield
