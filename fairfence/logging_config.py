"""
Logging setup shared by the app factory and the run scripts.
"""

from __future__ import annotations

import logging

LOG_FORMAT = "%(name)s %(levelname)s %(asctime)s %(message)s"
LOG_DATEFMT = "%m/%d/%Y %I:%M:%S %p"

_handler: logging.Handler | None = None


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Attach a single stream handler to the package logger.

    Calling this again replaces the handler installed by a previous call
    instead of stacking duplicates.
    """
    global _handler
    logger = logging.getLogger("fairfence")
    if _handler is not None:
        logger.removeHandler(_handler)

    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(_handler)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    return logger
