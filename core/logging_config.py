"""
Logging configuration for the automation engine.
Console output is colorized; files rotate under LOG_DIR.
"""

import os
import sys
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def format(self, record):
        # Copy so the file handlers never see escape codes
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    name: str = "job_engine",
    log_dir: Optional[str] = None,
    level: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger so every module's ``getLogger(__name__)``
    inherits the handlers.

    Args:
        name: Base name for the log files (default: job_engine)
        log_dir: Directory for rotating log files (default: LOG_DIR env)
        level: Log level name (default: LOG_LEVEL env, then INFO)

    Returns:
        The configured root logger
    """
    root = logging.getLogger()

    # Avoid duplicate handlers
    if any(getattr(h, "_job_engine", False) for h in root.handlers):
        return root

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # Console handler with colors
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(ColoredFormatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    console_handler._job_engine = True
    root.addHandler(console_handler)

    directory = Path(log_dir or os.getenv("LOG_DIR", "./logs"))
    directory.mkdir(parents=True, exist_ok=True)

    file_format = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # File handler with rotation
    file_handler = RotatingFileHandler(
        directory / f"{name}.log",
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(file_format)
    file_handler._job_engine = True
    root.addHandler(file_handler)

    # Error file handler (errors and above)
    error_handler = RotatingFileHandler(
        directory / f"{name}_errors.log",
        maxBytes=10 * 1024 * 1024,
        backupCount=5
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(file_format)
    error_handler._job_engine = True
    root.addHandler(error_handler)

    # Playwright and aiohttp are chatty at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    return root
