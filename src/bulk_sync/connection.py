"""
SQL Server connection wrapper over pyodbc.

Autocommit is on, so every statement of a run commits on its own. Only
opening the connection is retried; driver errors raised by statements are
wrapped in ``StatementExecutionError`` and surface immediately.
"""

import logging
from typing import Any, Optional, Sequence

import pyodbc

from utils.database_types import DatabaseType
from utils.retry import retry_database_operation

from .config import DEFAULT_CONNECT_TIMEOUT, SyncSettings
from .errors import StatementExecutionError

logger = logging.getLogger(__name__)


class SqlServerConnection:
    """
    A single pyodbc connection used sequentially by one thread.

    Usage:
        with SqlServerConnection.from_settings(SyncSettings.from_env()) as conn:
            rows = conn.query("SELECT 1 AS one")
    """

    database_type = DatabaseType.SQLSERVER

    def __init__(self, connection_string: str, connect_timeout: int = DEFAULT_CONNECT_TIMEOUT):
        self.connection_string = connection_string
        self.connect_timeout = connect_timeout
        self._conn: Optional[pyodbc.Connection] = None

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> "SqlServerConnection":
        return cls(settings.odbc_connection_string(), settings.connect_timeout)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @retry_database_operation(max_retries=3, base_delay=1.0)
    def _connect(self) -> pyodbc.Connection:
        return pyodbc.connect(
            self.connection_string,
            autocommit=True,
            timeout=self.connect_timeout,
        )

    def open(self) -> None:
        """Open the connection; no-op if already open."""
        if self._conn is not None:
            return
        self._conn = self._connect()
        logger.info("Connected to SQL Server")

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.close()
        finally:
            self._conn = None
        logger.info("Closed SQL Server connection")

    def cursor(self) -> pyodbc.Cursor:
        if self._conn is None:
            raise RuntimeError("Connection is not open")
        return self._conn.cursor()

    def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> int:
        """
        Execute one statement.

        Returns:
            Rows affected as reported by the driver (-1 when unknown)

        Raises:
            StatementExecutionError: If SQL Server rejects the statement
        """
        logger.debug(f"Executing SQL:\n{sql}")
        cursor = self.cursor()
        try:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)
            return cursor.rowcount
        except pyodbc.Error as e:
            raise StatementExecutionError(sql, e) from e
        finally:
            cursor.close()

    def executemany(self, sql: str, rows: Sequence[Sequence[Any]], fast: bool = True) -> None:
        """Execute a parameterized statement once per row, as one parameter array when fast."""
        cursor = self.cursor()
        try:
            cursor.fast_executemany = fast
            cursor.executemany(sql, rows)
        except pyodbc.Error as e:
            raise StatementExecutionError(sql, e) from e
        finally:
            cursor.close()

    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> list[dict[str, Any]]:
        """Execute a query and return rows as column name -> value dicts."""
        logger.debug(f"Querying SQL:\n{sql}")
        cursor = self.cursor()
        try:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)
            columns = [column[0] for column in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        except pyodbc.Error as e:
            raise StatementExecutionError(sql, e) from e
        finally:
            cursor.close()

    def __enter__(self) -> "SqlServerConnection":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
