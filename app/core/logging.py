"""Application-wide logging utilities.

Every module obtains its logger through :func:`get_logger` so all records
share the ``availability`` namespace and a single handler configuration.
"""

from __future__ import annotations

import logging

from app.core.config import Settings, get_settings

ROOT_LOGGER_NAME = "availability"

logger = logging.getLogger(ROOT_LOGGER_NAME)


def get_logger(name: str) -> logging.Logger:
    return logger.getChild(name.removeprefix("app."))


def configure_logging(settings: Settings | None = None) -> None:
    settings = settings or get_settings()
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(settings.log_format))
        logger.addHandler(handler)
    logger.setLevel(settings.log_level.upper())
