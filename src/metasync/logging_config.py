"""Logging setup for the metasync logger tree."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .models.config import SyncConfig

LOGGER_NAME = "metasync"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers kept at WARNING unless running at DEBUG
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "asyncio")


def _build_handlers(formatter: logging.Formatter, log_file: Optional[Union[str, Path]]) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def _quiet_noisy_loggers(level: int) -> None:
    quiet_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    format_string: Optional[str] = None,
    force: bool = False,
) -> logging.Logger:
    """
    Configure the ``metasync`` logger.

    Handlers are installed once; later calls only change the level unless
    ``force`` is set. Cache hits log at DEBUG, refreshes and scans at INFO,
    upstream failures at ERROR.

    Args:
        level: Logging level name (unknown names fall back to INFO)
        log_file: Optional file to append log output to (parent is created)
        format_string: Optional custom format string for log messages
        force: If True, replace existing handlers

    Returns:
        The configured "metasync" logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)

    if force or not logger.handlers:
        for handler in logger.handlers:
            handler.close()
        logger.handlers = _build_handlers(logging.Formatter(format_string or DEFAULT_FORMAT), log_file)

    _quiet_noisy_loggers(numeric_level)
    logger.propagate = False
    return logger


def setup_logging_from_config(config: SyncConfig, force: bool = False) -> logging.Logger:
    """Configure logging from the ``log_level`` and ``log_file`` settings."""
    return setup_logging(level=config.log_level, log_file=config.log_file, force=force)
