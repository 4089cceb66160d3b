"""Logging setup for the supply control service.

Text output for local runs, one JSON object per line when
``log_format`` is "json" so decisions can be shipped to a log pipeline.
"""

import json
import logging
import logging.config
import sys
from datetime import datetime, timezone
from typing import Any

from supplycontrol.config import settings

_RESERVED = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra = {k: v for k, v in record.__dict__.items() if k not in _RESERVED}
        if extra:
            log_data["extra"] = extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str, ensure_ascii=False)


def get_logging_config(log_level: str | None = None, log_format: str | None = None) -> dict[str, Any]:
    """
    Build a dictConfig for the service.

    Args:
        log_level: Overrides settings.log_level
        log_format: Overrides settings.log_format ("text" or "json")
    """
    level = (log_level or settings.log_level).upper()
    fmt = (log_format or settings.log_format).lower()

    formatters: dict[str, Any] = {
        "standard": {"format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"},
        "json": {"()": "supplycontrol.logging_config.JSONFormatter"},
    }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": formatters,
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json" if fmt == "json" else "standard",
                "stream": sys.stdout,
            },
        },
        "loggers": {
            "supplycontrol": {"level": level, "handlers": ["console"], "propagate": False},
            "uvicorn": {"level": level, "handlers": ["console"], "propagate": False},
        },
        "root": {"level": level, "handlers": ["console"]},
    }


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """Configure logging for the application."""
    logging.config.dictConfig(get_logging_config(log_level, log_format))
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
