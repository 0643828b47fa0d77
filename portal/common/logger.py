"""Logging infrastructure for the submission portal.

Every ``portal.*`` module logs through the standard library; this module
attaches the handlers once, on the ``portal`` logger, at application start.
Timestamps are UTC ISO 8601 so that decision logs line up with the audit
trail, which is stored in UTC.
"""

import logging
import logging.handlers
import os
import time
from typing import List, Optional

from portal.core.config import Settings

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


class UTCFormatter(logging.Formatter):
    """Formatter rendering ``asctime`` as UTC, e.g. ``2025-03-14T09:30:00Z``."""

    converter = time.gmtime

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(fmt or DEFAULT_FORMAT, datefmt=datefmt or "%Y-%m-%dT%H:%M:%SZ")


def _parse_level(level: str) -> int:
    name = level.upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LOG_LEVELS)}")
    return getattr(logging, name)


def _build_handlers(
    name: str,
    log_dir: str,
    file_logging: bool,
    console_logging: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, f"{name}.log"),
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        )
    if console_logging:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str,
    log_dir: str = "./logs",
    level: str = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Set up a logger with console and optional rotating file handlers.

    Calling it again for the same name only changes the level.

    Args:
        name: Logger name (``portal`` configures every module logger)
        log_dir: Directory for ``<name>.log``
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string
        date_format: Custom date format string
        file_logging: Enable file logging
        console_logging: Enable console logging
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))
    if logger.handlers:
        return logger

    formatter = UTCFormatter(log_format, date_format)
    for handler in _build_handlers(name, log_dir, file_logging, console_logging, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_from_settings(settings: Settings, name: str = "portal") -> logging.Logger:
    """Configure the package logger from application settings."""
    return setup_logger(
        name,
        log_dir=settings.log_dir,
        level="DEBUG" if settings.debug else settings.log_level,
        file_logging=settings.file_logging,
    )
