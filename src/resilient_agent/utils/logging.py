"""
Logging setup: Rich on stderr, optionally plain or JSON lines in a file.
"""

import json
import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that drown out resolution traces at DEBUG
QUIET_LOGGERS = ("asyncio",)


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def _console_handler(level: int) -> logging.Handler:
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    return handler


def _file_handler(path: str, level: int, json_format: bool, fmt: str) -> logging.Handler:
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(JsonLineFormatter() if json_format else logging.Formatter(fmt))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
    fmt: str = "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown names mean INFO
        log_file: Also write records here
        json_format: Write the file as JSON lines instead of ``fmt``
        fmt: Line format for a plain-text file
    """
    numeric = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric)
    root.handlers.clear()
    root.addHandler(_console_handler(numeric))
    if log_file:
        root.addHandler(_file_handler(log_file, numeric, json_format, fmt))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))


def setup_logging_from_settings(settings) -> None:
    """Apply a ``LoggingSettings`` group."""
    setup_logging(settings.level, settings.file, settings.json_format, settings.format)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
