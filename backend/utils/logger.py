"""Process-wide logging setup for the booking engine."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from backend.utils.config import Settings, get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LOGGER_INITIALIZED = False


def configure_logging(
    level: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> None:
    """Configure the root handler once; later calls only adjust the level."""

    global _LOGGER_INITIALIZED
    resolved_level = (level or (settings or get_settings()).log_level).upper()
    if _LOGGER_INITIALIZED:
        logging.getLogger().setLevel(resolved_level)
        return

    logging.basicConfig(
        level=resolved_level,
        format=LOG_FORMAT,
        stream=sys.stdout,
    )
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    """Return a module logger, configuring defaults on first use."""
    if not _LOGGER_INITIALIZED:
        configure_logging()
    return logging.getLogger(name)
