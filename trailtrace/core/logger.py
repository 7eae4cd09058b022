# trailtrace/core/logger.py
from loguru import logger
import sys

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Configure logger format
logger.remove()
logger.add(sys.stdout, format=LOG_FORMAT, level="INFO")

__all__ = ["logger", "LOG_FORMAT"]
