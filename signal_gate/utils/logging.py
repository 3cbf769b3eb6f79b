"""Logging setup for the ``signal_gate`` logger tree.

Console output is colored by level when stdout is a terminal. An optional
rotating file gets the same format without colors.
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional
from signal_gate.config.settings import LoggingConfig, get_settings

ROOT_LOGGER_NAME = "signal_gate"

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
RESET = "\033[0m"


class ColoredFormatter(logging.Formatter):
    """Wraps the level name in an ANSI color"""

    def format(self, record):
        color = LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        # Color a copy so other handlers see the plain record
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{RESET}"
        return super().format(record)


def _console_handler(config: LoggingConfig, level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    formatter_cls = ColoredFormatter if sys.stdout.isatty() else logging.Formatter
    handler.setFormatter(formatter_cls(config.format))
    return handler


def _file_handler(config: LoggingConfig, level: int) -> logging.Handler:
    Path(config.file_path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=config.file_path,
        maxBytes=config.max_file_size,
        backupCount=config.backup_count,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(config.format))
    return handler


def setup_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Configure the ``signal_gate`` logger from ``config`` (or global settings)."""
    if config is None:
        config = get_settings().logging

    level = getattr(logging, config.level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.addHandler(_console_handler(config, level))
    if config.file_path:
        logger.addHandler(_file_handler(config, level))

    # uvicorn configures the root logger too; keep our lines from printing twice
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``signal_gate`` namespace for module ``name``"""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
