"""Logging setup for the todosync command line."""

from __future__ import annotations

import logging
import os


def configure_logging(level_override: str | None = None) -> None:
    """Attach a single text handler to the root logger.

    ``level_override`` takes precedence over the ``TODOSYNC_LOG_LEVEL``
    environment variable; the default level is WARNING.
    """
    level_name = (level_override or os.getenv("TODOSYNC_LOG_LEVEL", "WARNING")).upper()
    level = getattr(logging, level_name, logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root_logger.addHandler(handler)
