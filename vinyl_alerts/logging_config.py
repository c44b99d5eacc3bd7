"""
Logging setup shared by the CLI entry points.

Console logging always; with LOG_FILE set, also a rotating combined log and
a rotating error-only log next to it (e.g. vinyl_alerts.log and
vinyl_alerts.error.log).
"""

import os
import logging
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 5


def _error_log_path(path: str) -> str:
    root, ext = os.path.splitext(path)
    return f"{root}.error{ext or '.log'}"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Configure root logging once for a CLI run.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Combined log path; defaults to the LOG_FILE env variable
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    handlers: list[logging.Handler] = [console]

    log_file = log_file or os.getenv("LOG_FILE")
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)

        combined = RotatingFileHandler(
            log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
        combined.setFormatter(formatter)
        handlers.append(combined)

        errors = RotatingFileHandler(
            _error_log_path(log_file), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
        )
        errors.setLevel(logging.ERROR)
        errors.setFormatter(formatter)
        handlers.append(errors)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Per-request noise from HTTP libraries
    for noisy in ("urllib3", "httpx", "httpcore", "apscheduler.executors.default"):
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))
