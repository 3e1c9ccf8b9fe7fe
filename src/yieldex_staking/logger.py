"""
Logging setup for the staking mirror service.

Provides helpers that configure the service loggers used by the
refresher, the chain reader and the HTTP API.
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

from yieldex_staking.config import Settings

SERVICE_LOGGER = "yieldex_staking"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logger(
    logger_name: str,
    log_level: Union[str, int] = logging.INFO,
    log_file: Optional[str] = None,
    console: bool = True,
    log_format: str = LOG_FORMAT,
    max_bytes: int = 10485760,  # 10 MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure and return a logger.

    Args:
        logger_name: Name of the logger.
        log_level: Logging level as a name or a logging constant.
        log_file: Path of the log file. Console only when None.
        console: Enable console output.
        log_format: Format of the log records.
        max_bytes: Size of a log file before it is rotated.
        backup_count: Number of rotated files to keep.

    Returns:
        The configured logger.
    """
    if isinstance(log_level, str):
        log_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)

    # Drop handlers from a previous setup
    logger.handlers = []

    formatter = logging.Formatter(log_format)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger


def setup_service_logger(settings: Settings) -> logging.Logger:
    """Configure the package logger from service settings."""
    return setup_logger(
        logger_name=SERVICE_LOGGER,
        log_level=settings.log_level,
        log_file=settings.log_file,
    )
