"""Logging configuration for voiceturn.

Every module gets its own ``voiceturn.*`` logger writing to stdout. The level
is shared: ``set_log_level`` changes it for loggers that already exist and
for the ones created afterwards.
"""
import logging
import sys
from typing import Optional, Union

LOGGER_PREFIX = "voiceturn"

DEFAULT_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - %(message)s"
)

_level: Union[int, str] = logging.INFO


def _is_voiceturn_logger(name: str) -> bool:
    return name == LOGGER_PREFIX or name.startswith(LOGGER_PREFIX + ".")


def setup_logger(
    name: str,
    level: Optional[Union[int, str]] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """Get a stdout logger. ``level`` defaults to the shared voiceturn level."""
    if level is None:
        level = _level

    logger = logging.getLogger(name)
    logger.setLevel(level)
    # Each logger owns its handler, so records are not repeated by parents
    logger.propagate = False

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
        logger.addHandler(handler)

    return logger


def set_log_level(level: Union[int, str]) -> None:
    """Apply ``level`` to all voiceturn loggers and their handlers."""
    global _level
    if isinstance(level, str):
        level = level.upper()
    _level = level

    for name, candidate in list(logging.Logger.manager.loggerDict.items()):
        if not isinstance(candidate, logging.Logger) or not _is_voiceturn_logger(name):
            continue
        candidate.setLevel(level)
        for handler in candidate.handlers:
            handler.setLevel(level)


def get_log_level() -> Union[int, str]:
    return _level


# Default logger
logger = setup_logger(LOGGER_PREFIX)
