"""Logging configuration for the ``qr_attendance`` logger tree.

Modules get their own logger via ``logging.getLogger(f"{APP_NAME}.<component>")``;
loggers are singletons by name, so this module only configures the parent.
"""
from __future__ import annotations

import logging

from .core.constants import APP_NAME

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(APP_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)

    # Close and clear existing handlers so repeated calls do not duplicate output.
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
