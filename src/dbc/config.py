"""Environment-variable-based configuration."""

import os


def get_log_level() -> str:
    """Return the logging level from DBC_LOG_LEVEL."""
    return os.environ.get("DBC_LOG_LEVEL", "WARNING").upper()


def should_log_queries() -> bool:
    """Return True if DBC_LOG_QUERIES is set to TRUE.

    Query arguments may carry sensitive values, so SQL logging is opt-in.
    """
    return os.environ.get("DBC_LOG_QUERIES", "").upper() == "TRUE"
