"""
Logging for HandGestureNavigator.

Every module logs through a child of the ``HandGestureNavigator`` logger.
``setup_logging()`` is called once by the entry point; library users who never
call it get whatever their own root configuration does.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import LOG_FILENAME, LOG_MAX_BYTES, LOG_BACKUP_COUNT

ROOT_LOGGER_NAME = "HandGestureNavigator"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"
# Thread name matters here: recognizer logs come from the HandPoseWorker thread
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s:%(lineno)d | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_log_directory() -> Path:
    """
    Resolve the per-user log directory.

    %APPDATA%/ChefHelper/logs on Windows, $XDG_STATE_HOME/chefhelper/logs
    (default ~/.local/state) elsewhere.

    Returns:
        The directory, created on demand.
    """
    if sys.platform == "win32" and os.environ.get("APPDATA"):
        log_dir = Path(os.environ["APPDATA"]) / "ChefHelper" / "logs"
    else:
        state_home = os.environ.get("XDG_STATE_HOME") or os.path.expanduser("~/.local/state")
        log_dir = Path(state_home) / "chefhelper" / "logs"

    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT))
    return handler


def _file_handler(path: Path) -> logging.Handler:
    handler = RotatingFileHandler(
        path,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8"
    )
    # The file always gets the full detail
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))
    return handler


def setup_logging(
    debug: bool = False,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None
) -> logging.Logger:
    """
    Configure the package logger for an application run.

    Calling it again replaces the previous handlers.

    Args:
        debug: Show debug messages on the console.
        log_to_file: Also write a rotating log file.
        log_filename: File name inside the log directory (default LOG_FILENAME).
        log_dir: Directory for the file (default ``get_log_directory()``).

    Returns:
        The package logger.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_level = logging.DEBUG if debug else logging.INFO
    logger.addHandler(_console_handler(console_level))
    logger.propagate = False

    if log_to_file:
        log_path = (log_dir or get_log_directory()) / (log_filename or LOG_FILENAME)
        logger.addHandler(_file_handler(log_path))
        logger.setLevel(logging.DEBUG)
        logger.debug(f"Log file: {log_path}")
    else:
        logger.setLevel(console_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger of the package logger, e.g. ``get_logger("HandGestureRecognizer")``."""
    return logging.getLogger(ROOT_LOGGER_NAME).getChild(name)
