"""
Logging Configuration

One format for the API, the scheduler and uvicorn:
    2026-01-06T14:05:52Z [api] INFO message

The level comes from the LOG_LEVEL setting.
"""

import logging
import sys
from datetime import UTC, datetime

from hostel_pass.core.config import settings


class ISO8601Formatter(logging.Formatter):
    """Formatter producing ISO8601 UTC timestamps and a source tag."""

    def __init__(self, source: str = "api"):
        self.source = source
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return f"{timestamp} [{self.source}] {record.levelname} {message}"


class HealthCheckFilter(logging.Filter):
    """Suppress access logs for health probes unless debugging."""

    HEALTH_PATHS = ("/health", "/ready")

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno <= logging.DEBUG:
            return True
        message = record.getMessage()
        return not any(f"GET {path} " in message for path in self.HEALTH_PATHS)


def configure_logging(source: str = "api", level: str | None = None) -> logging.Logger:
    """
    Configure the root logger and route uvicorn through it.

    Args:
        source: Tag shown in brackets in every line
        level: Level name; defaults to settings.log_level

    Returns:
        The root logger
    """
    resolved = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(ISO8601Formatter(source=source))
    handler.addFilter(HealthCheckFilter())
    root_logger.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.setLevel(resolved)
        uvicorn_logger.propagate = False

    logging.getLogger("apscheduler").setLevel(max(resolved, logging.WARNING))
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return root_logger
