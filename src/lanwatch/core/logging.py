"""Logging setup shared by the command line and the scheduler."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "apscheduler")


def normalize_log_level(level_name: str) -> str:
    """Normalize log level names to standard values."""
    if level_name.lower() in {"warning", "warn"}:
        return "WARNING"
    if level_name.lower() in {"error", "critical"}:
        return "ERROR"
    if level_name.lower() == "debug":
        return "DEBUG"
    return "INFO"


def configure_logging(level: str) -> logging.Logger:
    """Configure root logging with a single stdout stream handler.

    Args:
        level: Log level string

    Returns:
        The package logger
    """
    logger = logging.getLogger("lanwatch")
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, normalize_log_level(level), logging.INFO))

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(stream_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger
