"""Logging helpers with consistent formatting."""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

from rich.logging import RichHandler

from .env import get_bool_env


LOGGER_NAME = "leaselock"


def _default_level() -> int:
    name = os.getenv("LEASELOCK_LOG_LEVEL", "INFO").strip().upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the ``leaselock`` namespace.

    No handler is attached here; records propagate to whatever logging the
    host application configured.
    """
    return logging.getLogger(f"{LOGGER_NAME}.{name}")


def configure_logging(level: Optional[int] = None, *, rich: Optional[bool] = None) -> logging.Logger:
    """Attach a console handler to the ``leaselock`` logger.

    Meant for scripts that own the process. Idempotent.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    if level is None:
        level = _default_level()
    if rich is None:
        rich = get_bool_env("LEASELOCK_RICH_LOGS", default=True)

    logger.setLevel(level)

    if rich:
        handler: logging.Handler = RichHandler(
            level=level,
            markup=False,
            rich_tracebacks=True,
            tracebacks_show_locals=False,
            show_time=True,
            show_path=False,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s %(name)s %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    logger.addHandler(handler)
    logger.propagate = False
    return logger
