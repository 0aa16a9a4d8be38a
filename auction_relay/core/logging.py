"""
Provides support for logging
"""

import logging
import time
from typing import Any

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"


def configure_logging(
    level: int = logging.WARNING,
    handlers: list[logging.Handler] | None = None,
):
    """
    Configures logging format and log level.

    - log format: %(asctime)s [%(levelname)s] [%(name)s] %(message)s
    - timestamps are UTC, which matches the clock auctions are timed with

    >>> configure_logging(level=logging.DEBUG)
    >>> logger = logging.getLogger('LifecycleController')
    >>> logger.info('auction finalized: 01HQ3J9V7Z') # doctest: +SKIP
    2026-01-09 14:48:20,594 [INFO] [LifecycleController] auction finalized: 01HQ3J9V7Z
    """
    logging.Formatter.converter = time.gmtime
    logging.basicConfig(
        format=LOG_FORMAT,
        level=level,
        handlers=handlers,
        force=True,
    )
    logging.captureWarnings(True)


def parse_level(level: str | int) -> int:
    """
    Resolves a level name such as "debug" or "INFO" to its numeric value.

    :raise ValueError: if the level name is unknown
    """
    if isinstance(level, int):
        return level

    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"unknown log level: {level}")
    return value


def get_logger(obj: Any, name: str | None = None) -> logging.Logger:
    """
    Returns a logger using the class name as the logger name.
    If `name` is specified, then it is appended to the class name: `{self.__class__.__name__}.{name}`
    """
    logger = logging.getLogger(obj.__class__.__name__)
    if name is None:
        return logger

    return logger.getChild(name)
