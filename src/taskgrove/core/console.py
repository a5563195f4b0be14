"""Console output and logging configuration.

Provides Rich-based console output and logging setup:
    - console: Main Rich console for stdout
    - stderr_console: Rich console for stderr
    - setup_logging(): Configure logging with Rich handler
    - get_logger(): Get a named logger instance

Library code never configures handlers itself: the package logger carries a
NullHandler so nothing is emitted until an application calls setup_logging().
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

console = Console()
stderr_console = Console(stderr=True)

ROOT_LOGGER_NAME = "taskgrove"

logging.getLogger(ROOT_LOGGER_NAME).addHandler(logging.NullHandler())


def _normalize_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def setup_logging(level: str | int = logging.INFO, verbose: bool = False) -> logging.Logger:
    """Configure logging with a Rich handler and return the app logger."""
    numeric_level = logging.DEBUG if verbose else _normalize_level(level)

    handler = RichHandler(
        console=stderr_console,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(numeric_level)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(numeric_level)
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or ROOT_LOGGER_NAME)
