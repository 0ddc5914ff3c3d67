"""
Structured logging for clinic-records

Every engine logger writes one line per event to stdout, either as JSON
(python-json-logger) or as plain text for local runs. Draft, rule set
and field identifiers are passed through ``extra`` and end up as
top-level keys in the JSON output.
"""
import logging
import os
import sys
import time
from contextlib import contextmanager
from typing import Iterator

from pythonjsonlogger import jsonlogger

DEFAULT_LOGGER_NAME = "clinic-records"

JSON_FORMAT = "%(timestamp)s %(level)s %(logger)s %(module)s %(function)s %(message)s"
TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(funcName)s] %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Names the standard record attributes the way log queries expect them"""

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = log_record.get("timestamp") or self.formatTime(record, self.datefmt)
        log_record["level"] = (log_record.get("level") or record.levelname).upper()
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName


def _level(name: str | None) -> int:
    value = logging.getLevelName((name or os.getenv("LOG_LEVEL", "INFO")).upper())
    return value if isinstance(value, int) else logging.INFO


def _formatter(format_type: str) -> logging.Formatter:
    if format_type == "text":
        return logging.Formatter(TEXT_FORMAT, datefmt="%H:%M:%S")
    return CustomJsonFormatter(JSON_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S")


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: str | None = None,
    format_type: str | None = None,
) -> logging.Logger:
    """
    (Re)configure a logger with a single stdout handler.

    Args:
        name: Logger name
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (env LOG_LEVEL, default INFO)
        format_type: "json" or "text" (env LOG_FORMAT, default json)

    Returns:
        The configured logger; it does not propagate to the root logger
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_formatter(format_type or os.getenv("LOG_FORMAT", "json")))

    logger = logging.getLogger(name)
    logger.handlers = [handler]
    logger.setLevel(_level(level))
    logger.propagate = False
    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """Return the named logger, configuring it from the environment the first time."""
    logger = logging.getLogger(name)
    return logger if logger.handlers else setup_logger(name)


@contextmanager
def log_operation(operation: str, logger: logging.Logger | None = None, **fields) -> Iterator[None]:
    """
    Log how long a block took and whether it raised.

    Usage:
        with log_operation("Persisting draft", logger=logger, draft_id="abc"):
            ...
    """
    log = logger or get_logger()
    context = {"operation": operation, **fields}
    started = time.perf_counter()
    log.debug(f"Starting: {operation}", extra=context)
    try:
        yield
    except Exception as e:
        log.error(
            f"Failed: {operation}",
            extra={
                **context,
                "duration_seconds": round(time.perf_counter() - started, 3),
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
        )
        raise
    log.info(f"Completed: {operation}", extra={**context, "duration_seconds": round(time.perf_counter() - started, 3)})
