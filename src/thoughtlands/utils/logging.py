"""
Logging for Thoughtlands.

Every module takes its logger from ``setup_logging(__name__)``. Those
loggers carry no handlers of their own: records travel up to the
``thoughtlands`` logger, which the CLI equips once per process through
``configure_root_logging``. Library users who never call it get the
standard library's defaults.
"""

import logging
import sys
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter

APP_LOGGER = "thoughtlands"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FIELDS = "%(asctime)s %(name)s %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty third-party loggers held back to warnings
QUIET_LOGGERS = ("aiohttp", "asyncio")


def setup_logging(name: str | None = None) -> logging.Logger:
    """Logger for a module; ``None`` gives the application logger."""
    return logging.getLogger(name or APP_LOGGER)


def make_formatter(structured: bool = False) -> logging.Formatter:
    """JSON records for log shippers, plain lines for terminals."""
    if structured:
        return JsonFormatter(fmt=JSON_FIELDS, datefmt=DATE_FORMAT)
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def configure_root_logging(
    level: str = "INFO",
    structured: bool = False,
    log_file: Path | None = None
) -> logging.Logger:
    """Send the application's records to stderr and, optionally, a file.

    Calling this again replaces the handlers installed by the previous
    call instead of stacking new ones, so the CLI can reconfigure after
    reading ``--verbose``.

    Args:
        level: Level name for the application logger and its handlers
        structured: Emit one JSON object per record
        log_file: Also append records here; parent folders are created

    Returns:
        The configured ``thoughtlands`` logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    formatter = make_formatter(structured)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    app_logger = logging.getLogger(APP_LOGGER)
    for old in list(app_logger.handlers):
        app_logger.removeHandler(old)
        old.close()

    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        app_logger.addHandler(handler)

    app_logger.setLevel(numeric_level)
    app_logger.propagate = False

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return app_logger
