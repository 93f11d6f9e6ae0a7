"""Logging utilities."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """Return a logger with a stream handler attached to the package root.

    Handlers live on the ``staged_eval`` logger so child loggers propagate to
    it and ``configure_logging`` can change the level in one place.
    """
    root = logging.getLogger("staged_eval")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
        root.setLevel(logging.INFO)
    logger = logging.getLogger(name)
    if level is not None:
        logger.setLevel(level)
    return logger


def configure_logging(level: Union[int, str] = "INFO", log_file: Optional[Path] = None) -> None:
    """Set the package log level and optionally mirror records to a file."""
    root = get_logger("staged_eval")
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    root.setLevel(level)
    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        target = os.path.abspath(log_file)
        for handler in root.handlers:
            if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
                return
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(file_handler)
