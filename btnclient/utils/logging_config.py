"""Structured logging configuration for the BTN client.

Provides logging setup with correlation IDs, Rich console output, an
optional rotating log file and JSON structured output.
"""

from __future__ import annotations

import json
import logging
import logging.config
import sys
import time
from contextvars import ContextVar
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:  # pragma: no cover
    from btnclient.models import ObservabilityConfig

ROOT_LOGGER = "btnclient"

correlation_id: ContextVar[str | None] = cast(
    "ContextVar[str | None]",
    ContextVar("correlation_id", default=None),
)


class CorrelationFilter(logging.Filter):
    """Filter to add correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record."""
        record.correlation_id = correlation_id.get() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """Structured JSON formatter for logs."""

    _excluded_keys = frozenset(
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
            "correlation_id",
        }
    )

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
        log_entry.update(
            {
                key: value
                for key, value in record.__dict__.items()
                if key not in self._excluded_keys
            }
        )
        return json.dumps(log_entry, default=str)


def create_rich_handler(level: str = "INFO") -> logging.Handler:
    """Create a RichHandler writing to stdout with correlation IDs attached."""
    console = Console(file=sys.stdout, markup=False, soft_wrap=True)
    handler = RichHandler(
        console=console,
        level=level,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("[%(correlation_id)s] %(name)s: %(message)s"))
    handler.addFilter(CorrelationFilter())
    return handler


def setup_logging(config: ObservabilityConfig) -> None:
    """Set up logging for the ``btnclient`` logger tree."""
    level = config.log_level.value
    logging_config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
            },
            "simple": {
                "format": config.log_format,
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {
            "correlation": {
                "()": CorrelationFilter,
            },
        },
        "handlers": {},
        "loggers": {
            ROOT_LOGGER: {
                "level": level,
                "handlers": [],
                "propagate": False,
            },
        },
    }

    if config.log_file:
        log_path = Path(config.log_file).expanduser()
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
        logging_config["loggers"][ROOT_LOGGER]["handlers"].append("file")

    logging.config.dictConfig(logging_config)

    btn_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(btn_logger.handlers):
        if isinstance(handler, RichHandler):
            btn_logger.removeHandler(handler)
    btn_logger.addHandler(create_rich_handler(level))
