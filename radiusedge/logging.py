"""Logging configuration for RadiusEdge.

Only the CLI entry point and the test session call setup_logging(). When RadiusEdge
is embedded as a library the root logger is left to the host application, though
secrets registered with mask_secret() are still hidden from any handler that uses
SECRET_FILTER.

Run logs (the per-execution LogEntry batches) are not handled here, see radiusedge.logs.
"""

from enum import IntEnum
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import threading

import click
from pythonjsonlogger import jsonlogger
from rich.logging import RichHandler

from radiusedge.settings import RADIUSEDGE_DIRECTORY, settings

MASK = "******"
TEXT_FORMAT = "[%(levelname)s %(asctime)s %(name)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%d%b %H:%M:%S"
ROTATE_BYTES = 50 * 1024 * 1024


class LOG_LEVEL(IntEnum):
    TRACE = 5
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR

    @classmethod
    def parse(cls, level, default=None):
        """Turn a level name or number into a member; unknown values give ``default``."""
        default = cls.INFO if default is None else default
        if isinstance(level, str):
            return cls.__members__.get(level.upper(), default)
        try:
            return cls(level)
        except ValueError:
            return default


logging.addLevelName(LOG_LEVEL.TRACE, "TRACE")


class SecretFilter(logging.Filter):
    """Replace every registered secret in a rendered record with a mask."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self._secrets = set()

    def add(self, secret):
        if secret and len(str(secret)) > 2:
            with self._lock:
                self._secrets.add(str(secret))

    def mask(self, text):
        with self._lock:
            secrets = sorted(self._secrets, key=len, reverse=True)
        for secret in secrets:
            text = text.replace(secret, MASK)
        return text

    def filter(self, record):
        if self._secrets:
            record.msg = self.mask(record.getMessage())
            record.args = None
        return True


SECRET_FILTER = SecretFilter()


def mask_secret(secret):
    """Hide ``secret`` from every log line written from now on."""
    SECRET_FILTER.add(secret)


def _log_file(log_path):
    path = Path(log_path)
    if not path.is_absolute():
        path = RADIUSEDGE_DIRECTORY / path
    if not path.suffix:
        path = path / "radiusedge.log"
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def _console_handler(level):
    handler = RichHandler(
        level=level,
        rich_tracebacks=True,
        tracebacks_suppress=[click],
        show_path=level <= LOG_LEVEL.DEBUG,
        markup=False,
        log_time_format=DATE_FORMAT,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _file_handlers(path, level, structured):
    text_handler = RotatingFileHandler(path, maxBytes=ROTATE_BYTES, backupCount=3)
    text_handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT))
    handlers = [text_handler]
    if structured:
        json_handler = RotatingFileHandler(
            path.with_name(path.name + ".json"), maxBytes=ROTATE_BYTES, backupCount=3
        )
        json_handler.setFormatter(
            jsonlogger.JsonFormatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                rename_fields={"asctime": "timestamp", "levelname": "level", "name": "logger"},
            )
        )
        handlers.append(json_handler)
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_logging(console_level=None, file_level=None, log_path=None, structured=None):
    """Configure the root logger for CLI use.

    Any argument left as None is read from the LOGGING section of the settings.
    Calling it again (e.g. from the ``--log-level`` option) replaces the handlers.

    Args:
        console_level: Level name for the rich console handler, or "silent"
        file_level: Level name for the rotating log file, or "silent"
        log_path: Log file, or a directory to put radiusedge.log in; relative paths
            are taken from RADIUSEDGE_DIRECTORY
        structured: Also write a JSON lines file next to the text log
    """
    configured = settings.LOGGING
    console_level = console_level or configured.CONSOLE_LEVEL
    file_level = file_level or configured.FILE_LEVEL
    log_path = log_path or configured.LOG_PATH
    structured = configured.STRUCTURED if structured is None else structured

    handlers = []
    if console_level != "silent":
        handlers.append(_console_handler(LOG_LEVEL.parse(console_level)))
    if file_level != "silent":
        handlers.extend(
            _file_handlers(_log_file(log_path), LOG_LEVEL.parse(file_level), structured)
        )

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        handler.addFilter(SECRET_FILTER)
        root.addHandler(handler)
    root.setLevel(min((handler.level for handler in handlers), default=LOG_LEVEL.WARNING))
