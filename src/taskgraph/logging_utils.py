"""Loguru sink configuration for processes embedding the task graph core."""

from __future__ import annotations

import os
import sys
from typing import Any, Optional, TextIO

from loguru import logger

from .constants import ENV_LOG_LEVEL

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{module}</cyan>:<cyan>{line}</cyan>\n"
    "{message}"
)


def resolve_log_level(level: Optional[str] = None) -> str:
    """Explicit *level*, else ``TASKGRAPH_LOG_LEVEL``, else ``INFO``."""
    return (level or os.environ.get(ENV_LOG_LEVEL) or "INFO").upper()


def configure_logging(level: Optional[str] = None, sink: Optional[TextIO] = None, **options: Any) -> int:
    """Replace loguru's default handler with a single formatted sink.

    Returns the handler id so callers can remove it again.
    """
    logger.remove()
    return logger.add(
        sink or sys.stderr,
        level=resolve_log_level(level),
        format=LOG_FORMAT,
        **options,
    )
