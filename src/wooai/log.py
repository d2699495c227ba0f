"""Logging setup: one rich handler on the ``wooai`` logger."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

_ROOT_LOGGER = "wooai"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a stderr RichHandler to the package logger (idempotent).

    Args:
        level: Level name (``"DEBUG"``, ``"INFO"`` ...) or numeric level.

    Returns:
        The configured ``wooai`` logger.
    """
    logger = logging.getLogger(_ROOT_LOGGER)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True), rich_tracebacks=False, show_path=False, markup=False
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    return logger
