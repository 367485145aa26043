import logging
import sys
from typing import Any, Dict

from microgrid.core.config import settings

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Library loggers pinned regardless of LOG_LEVEL
LIBRARY_LEVELS: Dict[str, str] = {
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
    "redis": "WARNING",
    "filelock": "WARNING",
}

_HANDLER_MARK = "_microgrid_console"


def setup_logging() -> None:
    """Send every log record to stdout using LOG_FORMAT.

    Safe to call more than once; the app factory and the test suite both do,
    and only the most recent console handler stays installed.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=settings.LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(settings.LOG_LEVEL)
    setattr(handler, _HANDLER_MARK, True)

    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL)
    for existing in list(root.handlers):
        if getattr(existing, _HANDLER_MARK, False):
            root.removeHandler(existing)
    root.addHandler(handler)

    for name, level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    # Per-request access lines only while debugging
    if not settings.DEBUG:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class StructuredLogger:
    """Appends ``key=value`` pairs to a message, e.g.
    ``Trade executed | trade_id=trade_002``.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _log(self, level: int, message: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        if fields:
            message = " | ".join([message, *(f"{key}={value}" for key, value in fields.items())])
        self.logger.log(level, message)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self._log(logging.ERROR, message, **fields)


def get_logger(name: str) -> StructuredLogger:
    return StructuredLogger(name)
