"""
JournalPrep - Logger Module

This module sets up logging for the application.
"""

import logging

from journalprep.config import LOG_DATE_FORMAT, LOG_FORMAT, LOG_LEVEL, LOGGER_NAME


def setup_logger(
    log_level: int | None = None,
    log_format: str | None = None,
    logger_name: str | None = None,
) -> logging.Logger:
    """Set up and configure the application logger.

    Args:
        log_level: Logging level to use (default: config.LOG_LEVEL)
        log_format: Logging format string (default: config.LOG_FORMAT)
        logger_name: Name for the logger (default: config.LOGGER_NAME)

    Returns:
        A configured Logger instance
    """
    if log_level is None:
        log_level = LOG_LEVEL
    if log_format is None:
        log_format = LOG_FORMAT
    if logger_name is None:
        logger_name = LOGGER_NAME

    # basicConfig is a no-op once the root logger has handlers, so the level
    # is also set explicitly on the package logger.
    logging.basicConfig(level=log_level, format=log_format, datefmt=LOG_DATE_FORMAT)

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    return logger


logger = logging.getLogger(LOGGER_NAME)
