"""
Logging for the cash reader.

Every named logger gets a colored console handler and a rotating file
handler; a Loki push handler is attached when a Loki URL is set.
"""

import logging
import os
import time
from logging.handlers import RotatingFileHandler
from typing import Final, Optional

import colorlog
import httpx

from configs import APP_NAME, LOG_DIR, LOKI_URL


LOG_FORMAT: Final[str] = (
    "%(name)s | %(asctime)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s"
)
CONSOLE_FORMAT: Final[str] = (
    "%(name)s | %(log_color)s%(asctime)s | %(levelname)s | "
    "%(funcName)s:%(lineno)d | %(message)s"
)
DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"
MAX_LOG_FILE_SIZE: Final[int] = 5 * 1024 * 1024
LOG_BACKUP_COUNT: Final[int] = 3
LOKI_TIMEOUT: Final[float] = 2.0

LOG_COLORS: Final[dict[str, str]] = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}


def push_to_loki(url: str, app: str, level: str, line: str) -> None:
    """Push one log line to Loki's /loki/api/v1/push endpoint."""
    payload = {
        "streams": [
            {
                "stream": {"app": app, "level": level},
                "values": [[str(time.time_ns()), line]],
            }
        ]
    }
    with httpx.Client(timeout=LOKI_TIMEOUT) as client:
        client.post(url, json=payload)


class LokiHandler(logging.Handler):
    """Ships formatted records to Loki, labelled with app and level."""

    def __init__(self, url: str, app: str) -> None:
        super().__init__()
        self.url = url
        self.app = app

    def emit(self, record: logging.LogRecord) -> None:
        try:
            push_to_loki(self.url, self.app, record.levelname, self.format(record))
        except Exception:
            # Must not log from here
            self.handleError(record)


def get_logger(
    name: str,
    app: str = APP_NAME,
    log_file: Optional[str] = None,
    level: int = logging.DEBUG,
    loki_url: Optional[str] = LOKI_URL,
) -> logging.Logger:
    """
    Get a configured logger.

    Handlers are attached once; later calls return the same logger.

    Args:
        name: Logger name.
        app: Loki "app" label and default log file name.
        log_file: Log file path (default: <LOG_DIR>/<app>.log).
        level: Level for the logger and its handlers.
        loki_url: Loki push endpoint, or None for local logging only.
    """
    named = logging.getLogger(name)
    named.setLevel(level)
    if named.handlers:
        return named

    log_file = log_file or os.path.join(LOG_DIR, f"{app}.log")
    if os.path.dirname(log_file):
        os.makedirs(os.path.dirname(log_file), exist_ok=True)

    handlers: list[logging.Handler] = []

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_FILE_SIZE,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(colorlog.ColoredFormatter(
        CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS,
    ))
    handlers.append(console_handler)

    if loki_url:
        loki_handler = LokiHandler(loki_url, app)
        loki_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(loki_handler)

    for handler in handlers:
        handler.setLevel(level)
        named.addHandler(handler)

    return named


logger = get_logger(name="CASH_READER")
