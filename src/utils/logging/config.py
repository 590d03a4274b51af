"""
Process-wide logging setup.

Call ``setup_logging`` (or ``configure_from_env``) once at startup; library
modules only ever use ``logging.getLogger(__name__)``. Handlers installed
here are tracked, so calling setup again replaces them without touching
handlers other code attached to the root logger.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Mapping, Optional

from .formatters import DEFAULT_APP_NAME, ConsoleFormatter, JSONFormatter

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Chatty at DEBUG/INFO
QUIET_LOGGERS = ("urllib3", "requests", "opentelemetry")

TRUE_VALUES = ("1", "true", "yes")

_installed_handlers: list[logging.Handler] = []


def _console_handler(level: int, json_format: bool, app_name: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter(app_name=app_name))
    else:
        handler.setFormatter(ConsoleFormatter())
    return handler


def _file_handler(
    path: str,
    level: int,
    json_format: bool,
    app_name: str,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    if json_format:
        handler.setFormatter(JSONFormatter(app_name=app_name))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    console_output: bool = True,
    json_format: bool = False,
    app_name: str = DEFAULT_APP_NAME,
    max_bytes: int = 50 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Configure the root logger

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Rotating log file path (None disables file logging)
        console_output: Log to stderr
        json_format: JSON lines instead of plain text, for every handler
        app_name: ``app`` field of JSON records
        max_bytes: Log file size that triggers rotation
        backup_count: Rotated files kept

    Raises:
        ValueError: If the level name is unknown
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level!r}")

    shutdown_logging()

    root = logging.getLogger()
    root.setLevel(numeric_level)

    if console_output:
        _installed_handlers.append(_console_handler(numeric_level, json_format, app_name))
    if log_file:
        _installed_handlers.append(
            _file_handler(log_file, numeric_level, json_format, app_name, max_bytes, backup_count)
        )

    for handler in _installed_handlers:
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging configured",
        extra={"log_level": level, "log_file": log_file or "none", "json": json_format},
    )


def shutdown_logging() -> None:
    """Detach and close the handlers installed by ``setup_logging``."""
    root = logging.getLogger()
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root.removeHandler(handler)
        handler.close()


def configure_from_env(env: Optional[Mapping[str, str]] = None) -> None:
    """
    Configure logging from environment variables

    Variables:
        LOG_LEVEL: Level name (default: INFO)
        LOG_FILE: Log file path (default: none)
        LOG_JSON: JSON format (default: false)
        LOG_CONSOLE: Log to stderr (default: true)
    """
    env = os.environ if env is None else env

    setup_logging(
        level=env.get("LOG_LEVEL", "INFO"),
        log_file=env.get("LOG_FILE") or None,
        console_output=env.get("LOG_CONSOLE", "true").lower() in TRUE_VALUES,
        json_format=env.get("LOG_JSON", "false").lower() in TRUE_VALUES,
    )
