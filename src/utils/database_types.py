"""
Database type enumeration for type-safe connection identification.

The synchronization engine only speaks the SQL Server dialect; everything
else is detected so it can be rejected with a clear error before any DDL runs.
"""

from enum import Enum
from typing import Any


class DatabaseType(str, Enum):
    """
    Enumeration of recognised database kinds.

    Inherits from str for JSON serialization compatibility and
    easy comparison with string values.
    """

    SQLSERVER = "sqlserver"
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"
    UNKNOWN = "unknown"

    @classmethod
    def from_connection(cls, connection: Any) -> "DatabaseType":
        """
        Detect database type from a connection object.

        Wrappers that know their own kind expose a ``database_type``
        attribute; raw DB-API connections are recognised by the module of
        their class.

        Args:
            connection: Connection wrapper or raw DB-API connection

        Returns:
            DatabaseType enum value
        """
        declared = getattr(connection, "database_type", None)
        if isinstance(declared, DatabaseType):
            return declared

        module = type(connection).__module__.lower()

        if "pyodbc" in module:
            return cls.SQLSERVER
        elif "psycopg" in module:
            return cls.POSTGRESQL
        elif "sqlite" in module:
            return cls.SQLITE
        else:
            return cls.UNKNOWN

    @property
    def is_supported(self) -> bool:
        """Only SQL Server supports temp tables, MERGE ... OUTPUT and bulk copy here."""
        return self == DatabaseType.SQLSERVER

    def get_placeholder(self, index: int = 0) -> str:
        """
        Get parameter placeholder for this database type.

        Args:
            index: Parameter index (0-based)

        Returns:
            Placeholder string
        """
        if self == DatabaseType.POSTGRESQL:
            return f"${index + 1}"
        else:
            return "?"
