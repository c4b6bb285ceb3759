"""
Structured logging: JSON for cloud aggregators, readable format for dev.
Configured once from settings (LOG_LEVEL, LOG_JSON) at app creation.
"""

import json
import logging
import sys
from typing import Any

from core.config import Settings

ROOT_LOGGER = "apiserver"

_RESERVED = frozenset(
    (
        "name", "msg", "args", "created", "filename", "funcName", "levelname",
        "levelno", "lineno", "module", "msecs", "pathname", "process",
        "processName", "relativeCreated", "stack_info", "exc_info", "exc_text",
        "message", "taskName", "thread", "threadName",
    )
)


def configure_logging(settings: Settings) -> logging.Logger:
    """Install the stdout handler on the application logger. Safe to call repeatedly."""
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    if settings.LOG_JSON:
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s")
        )
    root.addHandler(handler)
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger under the application namespace.
    Use logger.info("event", extra={"key": "value"}) for structured fields.
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON for CloudWatch, Datadog, etc."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)
        # Merge extra dict into top level for structured search
        for key, value in record.__dict__.items():
            if key not in _RESERVED:
                log_obj[key] = value
        return json.dumps(log_obj, default=str)
