"""
Centralized logging configuration using loguru.
"""
from __future__ import annotations

import sys
from typing import Any

from loguru import logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

_sink_id: int | None = None


def configure_logging(level: str = "INFO") -> None:
    """
    Replace the stderr sink with one at the given level.

    Other sinks added by the caller are left untouched.
    """
    global _sink_id
    if _sink_id is None:
        # Drop loguru's default handler on first configuration
        logger.remove()
    else:
        logger.remove(_sink_id)
    _sink_id = logger.add(sys.stderr, format=_FORMAT, level=level.upper(), colorize=True)


logger.configure(extra={"name": "i2a"})
configure_logging("INFO")


def get_logger(name: str = __name__) -> Any:
    """
    Get a logger bound to a specific module name.

    Usage:
        from i2a.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Hello from this module")
    """
    return logger.bind(name=name)
