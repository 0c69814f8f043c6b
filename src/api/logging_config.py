"""
Logging configuration for the ComeCome API.
Console output plus a daily log file and a separate warnings/errors file.
"""

import sys
from datetime import datetime

from loguru import logger

from src import config

LOGS_DIR = config.LOGS_DIR
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = LOGS_DIR / f"comecome_{datetime.now().strftime('%Y-%m-%d')}.log"

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

LOG_FORMAT_FILE = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
    "{level: <8} | "
    "{name}:{function}:{line} | "
    "{message}"
)


def setup_logging():
    """Configure loguru sinks."""
    logger.remove()

    console_level = "DEBUG" if config.ENVIRONMENT == "development" else "INFO"
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level=console_level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    logger.add(
        LOG_FILE,
        format=LOG_FORMAT_FILE,
        level="DEBUG",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        backtrace=True,
        diagnose=False,
        enqueue=True,  # Thread-safe
    )

    # Security-relevant events (failed PINs, locks, rate limits) land here too
    error_log = LOGS_DIR / f"errors_{datetime.now().strftime('%Y-%m-%d')}.log"
    logger.add(
        error_log,
        format=LOG_FORMAT_FILE,
        level="WARNING",
        rotation="10 MB",
        retention="14 days",
        compression="zip",
        backtrace=True,
        diagnose=False,
        enqueue=True,
    )

    logger.info(f"Logging initialized. Log file: {LOG_FILE}")
    return logger


# Initialize logging on import
setup_logging()
