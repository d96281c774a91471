"""Logging configuration helpers for the workflow engine."""

from __future__ import annotations

import logging
from logging import Logger

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
ENGINE_LOGGER_NAME = "workflow_app"


def configure_logging(level: int = logging.INFO, engine_level: int | None = None) -> Logger:
    """Configure root logging once and return the engine's package logger.

    ``engine_level`` lets the engines log more (or less) than the rest of the
    process, e.g. DEBUG to see compare-and-swap retries while uvicorn stays at INFO.
    """
    logging.basicConfig(level=level, format=LOG_FORMAT)
    engine_logger = logging.getLogger(ENGINE_LOGGER_NAME)
    if engine_level is not None:
        engine_logger.setLevel(engine_level)
    return engine_logger
