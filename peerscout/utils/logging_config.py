"""Structured logging configuration for peerscout.

Provides logging setup with correlation IDs, a Rich console handler and
optional JSON output for log files.
"""

from __future__ import annotations

import json
import logging
import logging.config
import time
import uuid
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from peerscout.models import ObservabilityConfig

# Context variable for correlation ID
correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_EXCLUDED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "correlation_id",
    }
)


class CorrelationFilter(logging.Filter):
    """Filter to add correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record."""
        record.correlation_id = correlation_id.get() or "no-correlation-id"
        return True


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for logs."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "correlation_id"):
            log_entry["correlation_id"] = record.correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Anything passed through ``extra=``
        log_entry.update(
            {
                key: value
                for key, value in record.__dict__.items()
                if key not in _EXCLUDED_RECORD_KEYS
            }
        )

        return json.dumps(log_entry, default=str)


def setup_logging(config: ObservabilityConfig) -> None:
    """Set up logging configuration with Rich console output."""
    level = config.log_level.value

    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "rich": {
                "format": "%(message)s",
                "datefmt": "[%X]",
            },
            "structured": {
                "()": StructuredFormatter,
            },
            "simple": {
                "format": "%(asctime)s %(levelname)s %(correlation_id)s %(name)s.%(funcName)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {
            "correlation": {
                "()": CorrelationFilter,
            },
        },
        "handlers": {
            "console": {
                "class": "rich.logging.RichHandler",
                "level": level,
                "formatter": "rich",
                "filters": ["correlation"],
                "rich_tracebacks": True,
                "show_path": False,
            },
        },
        "loggers": {
            "peerscout": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": logging.WARNING,
            "handlers": ["console"],
        },
    }

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "structured" if config.structured_logging else "simple",
            "filters": ["correlation"],
            "filename": str(log_path),
            "maxBytes": 10 * 1024 * 1024,  # 10MB
            "backupCount": 5,
            "encoding": "utf-8",
        }
        logging_config["loggers"]["peerscout"]["handlers"].append("file")

    logging.config.dictConfig(logging_config)

    if config.log_correlation_id:
        correlation_id.set(str(uuid.uuid4()))
