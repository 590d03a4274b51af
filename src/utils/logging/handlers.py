"""
Context-carrying logger.
"""

import logging
from functools import partialmethod
from typing import Any


class ContextLogger:
    """
    Logger that merges a fixed context into the ``extra`` of every record.

    Keyword arguments of a log call are added to that context for the one
    record:

        log = ContextLogger(__name__, table="dbo.Employees")
        log.info("Staged rows", rows=250)   # extra: table, rows
    """

    def __init__(self, name: str, **context: Any):
        self.logger = logging.getLogger(name)
        self._context = dict(context)

    def log(self, level: int, msg: str, *args, exc_info=None, **context: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(
                level,
                msg,
                *args,
                exc_info=exc_info,
                extra={**self._context, **context},
                stacklevel=2,
            )

    debug = partialmethod(log, logging.DEBUG)
    info = partialmethod(log, logging.INFO)
    warning = partialmethod(log, logging.WARNING)
    error = partialmethod(log, logging.ERROR)

    def bind(self, **context: Any) -> "ContextLogger":
        """Child logger with more context; the receiver is unchanged."""
        return ContextLogger(self.logger.name, **{**self._context, **context})

    def get_context(self) -> dict[str, Any]:
        return dict(self._context)
