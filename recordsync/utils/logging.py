"""
Logging setup for Record Sync

A human-readable console handler by default; with JSON logging enabled, each
record is emitted as one JSON object carrying the correlation context.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional, Union

from recordsync.utils.correlation import correlation_id_filter

CONSOLE_FORMAT = "[%(asctime)s] %(levelname)s - %(name)s - %(message)s"
CONSOLE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes passed via `extra=` that are copied into JSON output
EXTRA_FIELDS = ("phase", "deleted", "inserted", "duration", "rows", "dropped")


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter with correlation ID support."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", "N/A"),
            "domain": getattr(record, "domain", "-"),
            "operation": getattr(record, "operation", "-"),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_logging: bool = False,
    stream=None,
    logger_name: Optional[str] = "recordsync"
) -> logging.Logger:
    """
    Configure the package logger.

    Replaces any handler installed by an earlier call, so it is safe to call
    more than once.

    Args:
        level: Log level name or number
        json_logging: Emit JSON lines instead of the console format
        stream: Output stream (defaults to stderr)
        logger_name: Logger to configure

    Returns:
        The configured logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(correlation_id_filter)

    if json_logging:
        handler.setFormatter(StructuredJSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT))

    logger = logging.getLogger(logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    return logger
