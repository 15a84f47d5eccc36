# src/querydeck/logging.py
"""
Logging helpers for querydeck.

Library modules call get_logger(__name__) and never touch the root logger.
The CLI (or an embedding application) calls configure_logging() once to
attach a rich console handler.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "querydeck"

_configured = False


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the querydeck namespace."""
    if not name or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: str = "WARNING", verbose: bool = False) -> logging.Logger:
    """
    Attach a RichHandler to the querydeck logger.

    Safe to call more than once; the handler is installed only the first time
    and later calls just adjust the level.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...).
        verbose: Force DEBUG and show tracebacks with locals.
    """
    global _configured

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    effective = "DEBUG" if verbose else level.upper()
    logger.setLevel(effective)

    if not _configured:
        handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=verbose,
            tracebacks_show_locals=verbose,
            show_path=verbose,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
        logger.propagate = False
        _configured = True

    return logger


def log_exception(logger: logging.Logger, message: str, exc: BaseException) -> None:
    """Log a recovered failure: message at WARNING, traceback at DEBUG."""
    logger.warning("%s: %s", message, exc)
    logger.debug("Traceback for: %s", message, exc_info=exc)
