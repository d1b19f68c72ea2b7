"""Logging configuration module."""

from __future__ import annotations

import logging

from geoimage.config.settings import get_settings

# Client libraries that log every request (and every poll tick) at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger; ``level`` overrides ``LOG_LEVEL``."""

    name = (level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
