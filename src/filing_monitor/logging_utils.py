"""Logging configuration helpers for the filing monitor."""
from __future__ import annotations

import logging
import os
from typing import Iterable

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Per-request chatter from these libraries drowns out the cycle summaries.
NOISY_LOGGERS = ("urllib3", "apscheduler.executors.default")


def _coerce_level(level: str | int) -> int:
    """Translate a user provided level (name or number) into a numeric log level."""

    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    if name not in logging._nameToLevel:  # type: ignore[attr-defined]
        raise ValueError(f"Unknown log level: {level}")
    return logging._nameToLevel[name]  # type: ignore[attr-defined]


def configure_logging(
    level: str | int | None = None,
    *,
    force: bool = False,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configure the root logger for console output.

    The level defaults to ``FILING_MONITOR_LOG_LEVEL`` and falls back to INFO
    when unset or unrecognised. Loggers listed in ``quiet`` are capped at
    WARNING unless the resolved level is DEBUG.
    """

    raw_level = os.getenv("FILING_MONITOR_LOG_LEVEL", "INFO") if level is None else level
    try:
        resolved_level = _coerce_level(raw_level)
    except ValueError:
        resolved_level = logging.INFO

    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        root_logger.setLevel(resolved_level)
    else:
        logging.basicConfig(level=resolved_level, format=LOG_FORMAT, force=force)

    if resolved_level > logging.DEBUG:
        for name in quiet:
            logging.getLogger(name).setLevel(logging.WARNING)


__all__ = ["configure_logging", "LOG_FORMAT"]
