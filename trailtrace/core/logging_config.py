# trailtrace/core/logging_config.py
from loguru import logger
import sys

from trailtrace.core.logger import LOG_FORMAT


def setup_logging(level: str = "INFO") -> None:
    """
    Configure application-wide logging using loguru.

    Replaces the import-time stdout sink so the level follows settings.
    """
    logger.remove()

    logger.add(
        sys.stdout,
        level=level.upper(),
        format=LOG_FORMAT,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
