"""Logging setup for the catalogue MCP tools."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import LoggingConfig

logger = logging.getLogger(__name__)


def setup_logging(log_config: LoggingConfig) -> None:
    """Configure the root logger from a LoggingConfig."""
    log_level = getattr(logging, log_config.level.upper(), logging.INFO)
    formatter = logging.Formatter(log_config.format)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Drop handlers from earlier calls
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if log_config.console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    if log_config.file_path:
        log_file = Path(log_config.file_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_config.file_path,
            maxBytes=log_config.max_file_size,
            backupCount=log_config.backup_count
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Third party libraries are noisy at INFO
    for name in ("aiohttp", "websockets", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging configured: level={log_config.level}, file={log_config.file_path}")
