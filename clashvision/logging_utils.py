"""Logging helpers."""

from __future__ import annotations

import logging
import sys
from typing import Optional, TextIO, Union

LOGGER_NAME = "clashvision"
_HANDLER_FLAG = "_clashvision_handler"


def configure_logging(level: Union[int, str] = logging.INFO, *, stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Attach a single console handler to the package logger.

    Calling it again only updates the level (no duplicated handlers).
    """

    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    for handler in logger.handlers:
        if getattr(handler, _HANDLER_FLAG, False):
            handler.setLevel(level)
            return logger

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    setattr(handler, _HANDLER_FLAG, True)
    logger.addHandler(handler)
    logger.propagate = False
    return logger
