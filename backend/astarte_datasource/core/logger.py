import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from astarte_datasource.core.config import settings

LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logger(
    logger_name: str = "astarte_datasource",
    log_level: str = "info",
    log_file_path: Optional[str] = None,
    max_log_file_size: int = 10 * 1024 * 1024,
    log_file_backup_count: int = 5,
) -> logging.Logger:
    """
    Configure and return a logger instance

    Args:
        logger_name: Name of the logger
        log_level: Log level (debug, info, warning, error, critical)
        log_file_path: Optional path of a size-rotated log file
        max_log_file_size: Maximum size of log file before rotation
        log_file_backup_count: Number of backup log files to keep
    """
    logger = logging.getLogger(logger_name)

    if logger.handlers:
        logger.handlers.clear()

    logger.setLevel(LOG_LEVELS.get(log_level.lower(), logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file_path:
        log_dir = os.path.dirname(log_file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file_path,
            maxBytes=max_log_file_size,
            backupCount=log_file_backup_count,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


app_logger = setup_logger(
    logger_name="astarte_datasource",
    log_level=settings.LOG_LEVEL,
    log_file_path=settings.LOG_FILE,
)


def get_logger(name: str) -> logging.Logger:
    """
    Get a child of the application logger.

    Children propagate to the application logger, so they share its handlers
    and stay visible to pytest's caplog.
    """
    return app_logger.getChild(name)
