"""
Centralized logging configuration and utilities.

Provides structured logging with JSON format support and configurable output
destinations, plus an audit helper for per-URL fetch activity.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
from structlog.stdlib import LoggerFactory

from ..config import get_config


LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def _file_handler(log_file: str, level: int) -> logging.Handler:
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8"
    )
    handler.setLevel(level)
    return handler


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None
) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog and the root logger for the fetcher.

    Arguments override the ``logging`` section of the loaded configuration.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Also write records to this rotating file
        log_format: 'json' for one JSON object per line, anything else for console output
    """
    settings = get_config().logging
    log_level = getattr(logging, (level or settings.level).upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(log_format or settings.format),
        ],
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(log_level)
    if not root.handlers:
        root.addHandler(logging.StreamHandler(sys.stdout))

    log_file = log_file or settings.file
    if log_file:
        root.addHandler(_file_handler(log_file, log_level))

    return structlog.get_logger("news_fetcher")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)


def log_fetch_activity(
    url: str,
    domain: Optional[str],
    success: bool,
    fetch_time_ms: float,
    status_code: Optional[int] = None,
    error_code: Optional[str] = None,
    error_message: Optional[str] = None,
    **extra: Any
) -> None:
    """
    Log content fetch activity for audit and monitoring.

    Args:
        url: URL that was fetched
        domain: Domain the URL belongs to
        success: Whether the fetch succeeded
        fetch_time_ms: Time spent fetching in milliseconds
        status_code: HTTP status code, if one was observed
        error_code: Classified error code if the fetch failed
        error_message: Error message if the fetch failed
    """
    logger = get_logger(__name__)

    log_data = {
        "url": url,
        "domain": domain,
        "fetch_time_ms": round(fetch_time_ms, 2),
        "success": success,
        **extra,
    }

    if status_code is not None:
        log_data["status_code"] = status_code

    if error_code:
        log_data["error_code"] = error_code

    if error_message:
        log_data["error_message"] = error_message

    if success:
        logger.info("Content fetch successful", **log_data)
    else:
        logger.warning("Content fetch failed", **log_data)
