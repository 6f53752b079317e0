"""Logging configuration for the SOCKS5 engine.

Library modules only log through ``loguru.logger``; sinks are installed by
the embedding application, typically the CLI, through ``setup_logging``.
"""

import sys
from pathlib import Path

from loguru import logger

LOG_DIR = Path.home() / ".easy-socks5" / "logs"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Replace loguru's default handler with console and optional file sinks.

    Args:
        level: Minimum level printed to stderr
        log_file: Rotating log file, always written at DEBUG level
    """
    logger.remove()
    logger.add(sys.stderr, format=CONSOLE_FORMAT, level=level, backtrace=True, diagnose=False)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            format=FILE_FORMAT,
            level="DEBUG",
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )


__all__ = ["LOG_DIR", "logger", "setup_logging"]
