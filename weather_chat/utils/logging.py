"""
Logging configuration utilities for Weather Chat.

Provides configurable logging with file rotation support.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from ..config import DEFAULT_LOG_FORMAT, ChatConfig


def _configure_root(
    level: int,
    log_format: str,
    log_file: Optional[str],
    max_bytes: int,
    backup_count: int,
) -> None:
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def setup_logging(config: Optional[ChatConfig] = None) -> None:
    """
    Configure logging based on ChatConfig settings.

    Args:
        config: ChatConfig instance. If None, uses sensible defaults.

    Features:
        - Configurable log level (DEBUG, INFO, WARNING, ERROR)
        - Optional file logging with rotation
        - Custom log format

    Example:
        config = ChatConfig.load("config.yaml")
        setup_logging(config)
    """
    if config is None:
        config = ChatConfig()

    _configure_root(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        log_format=config.log_format,
        log_file=config.log_file or None,
        max_bytes=config.log_max_bytes,
        backup_count=config.log_backup_count,
    )


def setup_logging_from_dict(config_dict: dict) -> None:
    """
    Configure logging from a dictionary.

    Args:
        config_dict: Dictionary with logging configuration.
            - level: Log level (DEBUG, INFO, WARNING, ERROR)
            - file: Optional log file path
            - format: Log format string
            - max_bytes: Max file size before rotation
            - backup_count: Number of backup files to keep

    Example:
        setup_logging_from_dict({"level": "DEBUG", "file": "chat.log"})
    """
    _configure_root(
        level=getattr(logging, config_dict.get("level", "INFO").upper(), logging.INFO),
        log_format=config_dict.get("format", DEFAULT_LOG_FORMAT),
        log_file=config_dict.get("file"),
        max_bytes=config_dict.get("max_bytes", 10485760),
        backup_count=config_dict.get("backup_count", 3),
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
