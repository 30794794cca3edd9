"""Logging helpers shared by the CLI and batch runner."""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_operational_logger(
    name: str,
    *,
    log_dir: str | None = None,
    level: str | int = "INFO",
) -> tuple[logging.Logger, str | None]:
    """
    Configure a named logger for one pipeline run.

    Records go to stderr at ``level`` and, when ``log_dir`` is given, to a UTF-8
    file at DEBUG so the full trace survives the run. stdout stays free for
    structured results.
    """

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(_coerce_level(level))
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    log_file = None
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{name.replace('.', '_')}.log")
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False

    logger.debug("Operational logging initialized for %s", name)
    if log_file:
        logger.debug("Operational log file: %s", log_file)

    return logger, log_file


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Invalid log level: {level!r}")
    return value
