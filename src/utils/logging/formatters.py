"""
Log formatters.

Both formatters surface the context a synchronization run attaches through
``extra=`` (destination table, staging table, row counts): JSONFormatter
nests it under ``context`` for log shippers, ConsoleFormatter appends it as
``[key=value, ...]``.
"""

import json
import logging
import socket
import sys
import traceback
from datetime import UTC, datetime
from typing import Any, TextIO

DEFAULT_APP_NAME = "sqlserver-bulk-sync"

_STANDARD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Attributes a caller added to the record through ``extra``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRIBUTES and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Args:
        app_name: Value of the ``app`` field
        include_hostname: Add the ``hostname`` field
        include_timestamp: Add an ISO 8601 UTC ``timestamp`` field
    """

    def __init__(
        self,
        app_name: str = DEFAULT_APP_NAME,
        include_hostname: bool = True,
        include_timestamp: bool = True,
    ):
        super().__init__()
        self.app_name = app_name
        self.include_timestamp = include_timestamp
        self.hostname = socket.gethostname() if include_hostname else None

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {}

        if self.include_timestamp:
            payload["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat(
                timespec="milliseconds"
            )

        payload["level"] = record.levelname
        payload["logger"] = record.name
        payload["message"] = record.getMessage()
        payload["app"] = self.app_name

        if self.hostname:
            payload["hostname"] = self.hostname

        payload["source"] = f"{record.module}:{record.funcName}:{record.lineno}"

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": "".join(traceback.format_exception(exc_type, exc, tb)),
            }

        context = record_context(record)
        if context:
            payload["context"] = context

        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Single-line human readable format, colored by level on a terminal.

    Args:
        use_colors: Color the level name (only honored when ``stream`` is a tty)
        stream: Stream the handler writes to (default: stderr)
    """

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def __init__(self, use_colors: bool = True, stream: TextIO | None = None):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        stream = stream or sys.stderr
        self.use_colors = use_colors and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)

        color = self.LEVEL_COLORS.get(record.levelno)
        if self.use_colors and color:
            level = f"[{record.levelname}]"
            line = line.replace(level, f"[\033[{color}m{record.levelname}\033[0m]", 1)

        context = record_context(record)
        if context:
            line += " [" + ", ".join(f"{key}={value}" for key, value in context.items()) + "]"

        return line
