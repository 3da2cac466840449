"""
TATAME - Shared Logging Configuration

Centralized logging setup for all TATAME components.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from .settings import LOG_LEVEL, get_logs_dir


# =============================================================================
# Log Format
# =============================================================================
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


# =============================================================================
# Logger Factory
# =============================================================================
def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger for a component.

    Args:
        name: Logger name (typically one of the component names below)
        level: Optional log level override

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    log_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(console_handler)

    return logger


def configure_file_logging(
    logger: logging.Logger,
    filename: str,
    max_bytes: int = 10_000_000,  # 10MB
    backup_count: int = 5,
) -> None:
    """
    Add rotating file logging to a logger.

    The file is written under LOG_DIR. Provisioning runs are long, so the
    API attaches this to the provisioning logger when TATAME_LOG_FILE is set.
    """
    file_handler = RotatingFileHandler(
        get_logs_dir() / filename,
        maxBytes=max_bytes,
        backupCount=backup_count,
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)


# =============================================================================
# Component Loggers
# =============================================================================
PROVISIONING_LOGGER = "tatame.provisioning"
