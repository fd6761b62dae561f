"""Logging setup shared by the application factory and scripts."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from maphub.core import config

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: config.Settings) -> None:
    """Install a root handler using the configured level.

    Calling this more than once only updates the level; handlers that are
    already installed (for example by uvicorn or pytest) are left alone.

    Args:
        settings: Application settings providing ``log_level``.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format=LOG_FORMAT)
    root.setLevel(level)
