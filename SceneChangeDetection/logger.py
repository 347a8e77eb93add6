"""
Logging helpers for the change detection system.

All loggers created here live under the ``SceneChangeDetection`` namespace
so applications can tune or silence the whole library in one place.
"""

import logging
import sys
from typing import Optional, Union

ROOT_LOGGER_NAME = "SceneChangeDetection"

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%H:%M:%S"


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level}")
    return resolved


def setup_logger(name: str = ROOT_LOGGER_NAME,
                 level: Union[str, int] = "INFO",
                 log_file: Optional[str] = None,
                 console: bool = True) -> logging.Logger:
    """
    Create (or reconfigure) a logger with console and optional file output

    Args:
        name: Logger name
        level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR') or int
        log_file: Optional path to a log file
        console: Attach a stderr handler

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level(level))

    # Drop handlers from a previous setup call
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    if console:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a library logger

    Args:
        name: Short module name (e.g. 'alignment'); None returns the root
            library logger

    Returns:
        Logger named ``SceneChangeDetection.<name>``
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name.startswith(ROOT_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_root_logger(level: Union[str, int] = "INFO",
                          log_file: Optional[str] = None) -> logging.Logger:
    """Configure the library root logger; module loggers propagate to it"""
    return setup_logger(ROOT_LOGGER_NAME, level=level, log_file=log_file)


def disable_console_logging():
    """Remove console handlers from the library root logger"""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)


def set_level(level: Union[str, int]):
    """Change the level of the library root logger"""
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(_resolve_level(level))


# Library code should not emit "No handler found" warnings
logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())
