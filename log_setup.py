"""Shared logging setup for the web app and the CLI.

One session log (latest.log, truncated when the CLI starts) and one archive
rotated at midnight (migrate.log). App modules and the third-party loggers
we care about all write to both, told apart by logger name.
"""

import logging
import os
import threading
from logging.handlers import TimedRotatingFileHandler

from config import CONSOLE_LOG_LEVEL, LOG_DIR

os.makedirs(LOG_DIR, exist_ok=True)

LATEST_LOG = os.path.join(LOG_DIR, "latest.log")
DAILY_LOG = os.path.join(LOG_DIR, "migrate.log")

_FILE_FMT = logging.Formatter(
    "%(asctime)s [%(name)s] %(levelname)-5s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
_CONSOLE_FMT = logging.Formatter("%(message)s")

# Flask serves requests on several threads; handlers are created once.
_lock = threading.Lock()
_file_handlers = []


def _archive_name(name):
    # migrate.log.2024-03-05 -> migrate.2024-03-05.log
    return name.replace(".log.", ".") + ".log"


def _shared_file_handlers():
    with _lock:
        if not _file_handlers:
            latest = logging.FileHandler(LATEST_LOG, mode="a", encoding="utf-8")
            daily = TimedRotatingFileHandler(DAILY_LOG, when="midnight", backupCount=0, encoding="utf-8")
            daily.namer = _archive_name
            for handler in (latest, daily):
                handler.setLevel(logging.DEBUG)
                handler.setFormatter(_FILE_FMT)
                _file_handlers.append(handler)
        return list(_file_handlers)


def _add_file_handlers(logger):
    for handler in _shared_file_handlers():
        if handler not in logger.handlers:
            logger.addHandler(handler)


def get_logger(name):
    """Named app logger: console at CONSOLE_LOG_LEVEL, both files at DEBUG."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    console = logging.StreamHandler()
    console.setLevel(CONSOLE_LOG_LEVEL)
    console.setFormatter(_CONSOLE_FMT)
    logger.addHandler(console)
    _add_file_handlers(logger)
    return logger


def attach_library_loggers(names=("werkzeug", "spotipy.client")):
    """Send third-party loggers to the shared files and keep them off the console.

    The dev server logs one line per request and spotipy logs every HTTP
    error it raises; both belong in latest.log, not in the terminal.
    """
    for name in names:
        lib = logging.getLogger(name)
        lib.setLevel(logging.INFO)
        lib.propagate = False
        _add_file_handlers(lib)


def reset_latest():
    """Truncate latest.log at session start."""
    open(LATEST_LOG, "w").close()
