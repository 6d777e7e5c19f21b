"""
Logging configuration for the concierge decision core.

All modules log under the `concierge` logger. Its level comes from the
`logging.level` config key; the LOG_LEVEL environment variable overrides it.
"""
import logging
import os
import sys
from typing import Optional

DEFAULT_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("concierge")

if not logger.handlers:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

# Keep turn decisions out of the host application's root logger
logger.propagate = False


def resolve_level(configured: Optional[str] = None) -> str:
    """Effective level name: LOG_LEVEL env, then the configured level, then INFO."""
    level = os.getenv("LOG_LEVEL") or configured or DEFAULT_LEVEL
    level = str(level).upper()
    if not isinstance(logging.getLevelName(level), int):
        logger.warning(f"Unknown log level {level!r}, using {DEFAULT_LEVEL}")
        return DEFAULT_LEVEL
    return level


def configure_logging(level: Optional[str] = None) -> str:
    """
    Apply a log level to the concierge logger and its handlers.

    Args:
        level: Configured level name (e.g. "DEBUG"); None keeps the default

    Returns:
        The level name actually applied
    """
    applied = resolve_level(level)
    logger.setLevel(applied)
    for handler in logger.handlers:
        handler.setLevel(applied)
    return applied


configure_logging()


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Optional name for the logger (will be appended to 'concierge')

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"concierge.{name}")
    return logger
