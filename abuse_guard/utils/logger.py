"""
Logging configuration for Abuse Guard.

Provides structured logging for production monitoring and debugging.
"""

import logging
import sys
from typing import Optional

from ..config import settings


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (defaults to 'abuse_guard')

    Returns:
        Configured logger instance
    """
    logger_name = name or "abuse_guard"
    logger = logging.getLogger(logger_name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(settings.app_log_level)

    return logger


# Default logger instance
logger = get_logger()
