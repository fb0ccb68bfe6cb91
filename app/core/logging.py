"""
Keyhost Flights - Logging Setup
Configures the loguru logger from settings
"""

import sys

from loguru import logger

from app.core.config import settings


def setup_logging() -> None:
    """Replace loguru's default sink with one driven by LOG_LEVEL / LOG_FORMAT"""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL.upper(),
        serialize=settings.LOG_FORMAT == "json",
        backtrace=settings.DEBUG,
        diagnose=settings.DEBUG,
    )
