"""
Exception hierarchy for bulk synchronization.

Every error names the table, column, type or record type involved so a
failed run can be traced back without re-running it. Nothing in the engine
catches these: a failure aborts the remaining steps of the run and surfaces
to the caller, possibly leaving staging tables behind on the session.
"""

from typing import Any


class BulkSyncError(Exception):
    """Base exception for bulk synchronization errors."""

    pass


class UntrackedRecordError(BulkSyncError):
    """Raised when a record was never registered with the change tracker."""

    def __init__(self, record: Any):
        self.record = record
        super().__init__(
            f"Record of type {type(record).__name__} is not tracked. "
            "Records must be added to the change tracker before saving."
        )


class UnsupportedProviderError(BulkSyncError):
    """Raised when the connection is not of a supported kind."""

    def __init__(self, connection: Any, database_type: str):
        self.connection = connection
        self.database_type = database_type
        super().__init__(
            f"Only SQL Server connections are supported, got {type(connection).__name__} "
            f"({database_type})"
        )


class UnsupportedColumnTypeError(BulkSyncError):
    """Raised when a column type has no staging table mapping."""

    def __init__(self, scalar_type: Any, column: str | None = None):
        self.scalar_type = scalar_type
        self.column = column
        where = f" for column {column!r}" if column else ""
        super().__init__(f"Unsupported database column type: {scalar_type}{where}")


class SchemaNotFoundError(BulkSyncError):
    """Raised when the catalog has no schema for a record type."""

    def __init__(self, record_type: type):
        self.record_type = record_type
        super().__init__(f"No table schema registered for {record_type.__name__}")


class RefreshCorrelationError(BulkSyncError):
    """
    Raised when output rows and staged records do not pair up one to one.

    Covers a record with no output row, an output row matching no record and
    two output rows sharing a correlation key.
    """

    def __init__(self, table: str, message: str, key: tuple | None = None):
        self.table = table
        self.key = key
        detail = f" (key={key!r})" if key is not None else ""
        super().__init__(f"Refresh of {table} failed: {message}{detail}")


class StatementExecutionError(BulkSyncError):
    """
    Raised when SQL Server rejects a statement.

    The driver exception is kept as ``__cause__`` and on ``driver_error``.
    """

    def __init__(self, statement: str, driver_error: Exception):
        self.statement = statement
        self.driver_error = driver_error
        first_line = statement.strip().splitlines()[0] if statement.strip() else ""
        super().__init__(f"Statement failed: {first_line[:200]}: {driver_error}")
