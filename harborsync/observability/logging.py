"""structlog setup for HarborSync.

Interactive commands log human-readable lines; the scheduler daemon is
usually run with ``json_output: true`` so its output can be shipped
elsewhere. Both go to stderr, leaving stdout to the CLI.

Every entry logged inside a ``session_scope`` gets a ``session_id`` key.

Usage:
    from harborsync.observability.logging import configure_logging

    configure_logging(level="DEBUG", json_output=False)

    logger = structlog.get_logger()
    logger.info("schedule_armed", next_run_at="2026-01-01T02:00:00")
"""

import logging
import sys
from typing import Any, List

import structlog
from structlog.typing import EventDict, WrappedLogger

from harborsync.observability.context import current_session_id


def add_session_id(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add ``session_id`` when a run is in scope and the caller did not."""
    session_id = current_session_id()
    if session_id is not None:
        event_dict.setdefault("session_id", session_id)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    add_timestamp: bool = True,
) -> None:
    """Configure structlog.

    Safe to call more than once: loggers are not cached, so the CLI can
    start with console output and switch to the configured level once
    the config file is loaded.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines instead of the console format
        add_timestamp: Prefix each entry with an ISO timestamp
    """
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        add_session_id,
        structlog.processors.add_log_level,
    ]
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors += [
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    processors.append(
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
