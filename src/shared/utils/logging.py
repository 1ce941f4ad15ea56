"""Shared logging configuration for workers and diagnostics tooling.

Diagnostics modules only create module-level loggers; configuring handlers
is left to whichever entry point owns the process.
"""

from __future__ import annotations
import logging
import os
import sys
from typing import Iterable, Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
SHORT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"

# Chatty libraries used around the browser workers
NOISY_LOGGERS = ("psutil", "urllib3", "playwright")


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    include_timestamp: bool = True,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configure root logger with a stdout handler.

    Args:
        level: Logging level name. If None, reads LOG_LEVEL or defaults to INFO.
        format_string: Custom format string. If None, uses the default format.
        include_timestamp: Whether the default format includes a timestamp.
        quiet_loggers: Logger names lowered to WARNING.

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logger = logging.getLogger(__name__)
        >>> logger.debug("Debug message")
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()

    if format_string is None:
        format_string = DEFAULT_FORMAT if include_timestamp else SHORT_FORMAT

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=format_string,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )

    for logger_name in quiet_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a logger, optionally overriding its level.

    Args:
        name: Logger name (typically __name__)
        level: Optional logging level override
    """
    logger = logging.getLogger(name)

    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger
