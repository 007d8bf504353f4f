"""
Logging setup. Modules log through ``logging.getLogger(__name__)``;
this only configures the root handler once at startup.
"""
from __future__ import annotations

import logging

from tasktracker.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Attach a stream handler to the root logger at the configured level."""
    log_level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    logging.getLogger().setLevel(log_level)

    # SQL echo is controlled by DEBUG on the engine, keep the logger itself quiet
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
