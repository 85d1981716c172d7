"""Logging setup for applications that embed dbc."""

import logging
import sys

from dbc.config import get_log_level, should_log_queries

_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure root logging to stderr.

    The library itself only emits records; applications call this once at
    startup if they have no logging configuration of their own.
    """
    logging.basicConfig(
        level=getattr(logging, level or get_log_level()),
        format=_FORMAT,
        stream=sys.stderr,
    )


def log_query(logger: logging.Logger, action: str, query: object) -> None:
    """Log SQL text and arguments at debug level when DBC_LOG_QUERIES is on."""
    if should_log_queries():
        logger.debug("%s %s", action, query)
