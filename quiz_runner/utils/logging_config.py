"""Logging configuration helpers for the quiz runner."""

from __future__ import annotations

import logging
from logging import Logger
import os


def configure_logging(level: str | None = None) -> Logger:
    """Configure basic logging for the application and return the package logger.

    The level defaults to ``QUIZ_RUNNER_LOG_LEVEL`` (falling back to INFO).
    """
    level_name = (level or os.getenv("QUIZ_RUNNER_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("quiz_runner")
