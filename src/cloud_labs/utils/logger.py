"""Logging configuration for the cloud labs tooling."""

import logging
import sys
from typing import Optional
from pythonjsonlogger import jsonlogger

from ..config import config

LOGGER_PREFIX = "cloud_labs"


def _build_formatter() -> logging.Formatter:
    # JSON lines in prod so CloudWatch/Logs Insights can query the fields
    if config.environment == "prod":
        return jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    return logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name. If None, uses the package logger.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(name or LOGGER_PREFIX)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    log_level = getattr(logging, config.log_level.upper(), logging.INFO)
    logger.setLevel(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(_build_formatter())
    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def set_log_level(level: str) -> None:
    """
    Change the level of every logger created through get_logger.

    Args:
        level: Level name such as 'DEBUG' or 'WARNING'.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    for name, logger in logging.Logger.manager.loggerDict.items():
        if not isinstance(logger, logging.Logger):
            continue
        if name == LOGGER_PREFIX or name.startswith(LOGGER_PREFIX + "."):
            logger.setLevel(log_level)
            for handler in logger.handlers:
                handler.setLevel(log_level)
