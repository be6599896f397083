"""
Logging setup for the session and transaction layer using Python's standard
logging with JSON formatting for structured logs.

Log destinations:
- Console (stderr): Human-readable format, or JSON when log_format="json"
- {log_dir}/errors.jsonl: JSON format for error tracking (only when log_dir is set)
"""

from __future__ import annotations

import logging
import logging.handlers
import sys

from pathlib import Path
from typing import Any

from pythonjsonlogger import json as jsonlogger

from spanner_session.core.constants import (
    LOG_BACKUP_COUNT_ERRORS,
    LOG_MAX_SIZE,
    LOGGER_NAME,
    get_settings,
)

#: Context keys forwarded into every record as structured fields.
CONTEXT_FIELDS = ("session", "transaction_id", "operation", "attempt")


class ErrorFilter(logging.Filter):
    """Filter to only allow ERROR and CRITICAL logs"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ColoredConsoleFormatter(logging.Formatter):
    """
    Formatter that adds colors to log levels and standardizes format.
    Format: HH:MM:SS [LEVEL] logger_name - message
    """

    # ANSI color codes
    GREY = "\x1b[38;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        level_fmt = f"[{record.levelname}]"
        color = self.LEVEL_COLORS.get(record.levelno)
        if color:
            level_fmt = f"{color}{level_fmt}{self.RESET}"

        record.asctime = self.formatTime(record, "%H:%M:%S")
        message = record.getMessage()

        # Append any operation context so console lines stay greppable
        context = [f"{key}={getattr(record, key)}" for key in CONTEXT_FIELDS if getattr(record, key, None) is not None]
        if context:
            message = f"{message} ({', '.join(context)})"

        formatted = f"{record.asctime} {level_fmt} {record.name} - {message}"
        if record.exc_info:
            formatted = f"{formatted}\n{self.formatException(record.exc_info)}"
        return formatted


def setup_logging(
    name: str = LOGGER_NAME,
    debug: bool | None = None,
    log_format: str | None = None,
    log_dir: str | Path | None = None,
) -> logging.Logger:
    """
    Set up logging with console and optional JSON file handlers.

    Args:
        name: Logger name
        debug: Enable debug logging (overrides settings.debug)
        log_format: "console" or "json" (overrides settings.log_format)
        log_dir: Directory for errors.jsonl (overrides settings.log_dir)

    Returns:
        Configured logger instance
    """
    settings = get_settings()
    if debug is None:
        debug = settings.debug
    if log_format is None:
        log_format = settings.log_format
    if log_dir is None:
        log_dir = settings.log_dir

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    logger.handlers = []
    logger.propagate = False

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    if log_format == "json":
        console_handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                timestamp=True,
            )
        )
    else:
        console_handler.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    # --- Error Log Handler (JSON) ---
    if log_dir:
        error_dir = Path(log_dir)
        error_dir.mkdir(parents=True, exist_ok=True)

        error_handler = logging.handlers.RotatingFileHandler(
            error_dir / "errors.jsonl",
            maxBytes=LOG_MAX_SIZE,
            backupCount=LOG_BACKUP_COUNT_ERRORS,
            encoding="utf-8",
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.addFilter(ErrorFilter())
        error_handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(timestamp)s %(levelname)s %(name)s %(message)s",
                timestamp=True,
            )
        )
        logger.addHandler(error_handler)

    return logger


class SpannerLogger:
    """
    High-level logging interface for the session and transaction layer.
    Wraps standard Python logging and forwards operation context as extra fields.

    The underlying logger is configured lazily on first use so importing the
    package never reads settings or touches the filesystem.
    """

    def __init__(self, name: str = LOGGER_NAME):
        self.name = name
        self._logger: logging.Logger | None = None

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = setup_logging(self.name)
        return self._logger

    def configure(self, **kwargs: Any) -> logging.Logger:
        """Rebuild handlers, e.g. after settings change."""
        self._logger = setup_logging(self.name, **kwargs)
        return self._logger

    def _extra(self, context: dict[str, Any]) -> dict[str, Any]:
        # Drop empty context so JSON records only carry meaningful fields
        return {key: value for key, value in context.items() if value is not None}

    def debug(self, message: str, **context: Any) -> None:
        """Debug level logging"""
        self.logger.debug(message, extra=self._extra(context))

    def info(self, message: str, **context: Any) -> None:
        """Info level logging"""
        self.logger.info(message, extra=self._extra(context))

    def warning(self, message: str, **context: Any) -> None:
        """Warning level logging"""
        self.logger.warning(message, extra=self._extra(context))

    def error(self, message: str, exc_info: bool = False, **context: Any) -> None:
        """Error level logging with optional exception info"""
        self.logger.error(message, extra=self._extra(context), exc_info=exc_info)


# Global logger instance
logger = SpannerLogger()
