"""
Structured logging for the bulk synchronization engine

Usage:
    from utils.logging import configure_from_env

    configure_from_env()    # once, at startup

    logger = logging.getLogger(__name__)
    logger.info("Merged staging table", extra={"table": "dbo.Employees", "rows": 250})
"""

from .config import configure_from_env, setup_logging, shutdown_logging
from .formatters import ConsoleFormatter, JSONFormatter, record_context
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "configure_from_env",
    "shutdown_logging",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
    "record_context",
]
