"""Logging setup for Archive Meta.

All modules log through child loggers of the application logger
(``get_logger("core.id3_parser")``), so one ``setup_logger`` call at the
entry point controls the whole pipeline.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from archive_meta.utils.constants import APP_NAME

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s.%(module)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every pooled connection at DEBUG/INFO. A batch of
# thousands of ranged reads would bury the pipeline's own messages.
NOISY_LIBRARIES = ("urllib3", "requests")


def parse_level(log_level: str | int) -> int:
    """Translate a level name ("debug", "INFO") or number to a logging level.

    Unknown names fall back to INFO.
    """
    if isinstance(log_level, int):
        return log_level
    return getattr(logging, str(log_level).upper(), logging.INFO)


def setup_logger(
    log_level: str = "INFO",
    log_file: str | None = None,
) -> logging.Logger:
    """Configure and return the application logger.

    Args:
        log_level: Logging level string (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional path to a log file. If None, logs only to console.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(APP_NAME)
    if logger.handlers:
        return logger

    level = parse_level(log_level)
    logger.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return logger


def set_level(log_level: str | int) -> None:
    """Change the application log level after setup (e.g. ``--verbose``)."""
    logging.getLogger(APP_NAME).setLevel(parse_level(log_level))


def get_logger(module_name: str | None = None) -> logging.Logger:
    """Get a child logger for a specific module.

    Args:
        module_name: Dotted module name (e.g. 'core.batch_processor').

    Returns:
        Logger instance.
    """
    base = logging.getLogger(APP_NAME)
    if module_name:
        return base.getChild(module_name)
    return base
