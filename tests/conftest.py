"""
Pytest configuration and fixtures for bulk synchronization tests.
Provides record types, a schema catalog and a recording fake connection.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import pytest

from bulk_sync.schema import (
    ColumnDescriptor,
    GenerationKind,
    RegisteredSchemaCatalog,
    ScalarType,
    TableSchema,
)
from utils.database_types import DatabaseType


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


@pytest.fixture(autouse=True)
def set_test_env_vars() -> None:
    """Set default test environment variables if not already set."""
    defaults = {
        "SQLSERVER_HOST": "localhost",
        "SQLSERVER_DATABASE": "bulk_sync_test",
        "SQLSERVER_USER": "sa",
        "SQLSERVER_PASSWORD": "YourStrong!Passw0rd",
        "VAULT_ADDR": "http://localhost:8200",
        "VAULT_TOKEN": "dev-root-token",
    }

    for key, value in defaults.items():
        if key not in os.environ:
            os.environ[key] = value


@dataclass(eq=False)
class Employee:
    """Table with an identity key and two computed timestamps."""

    id: int = 0
    name: Optional[str] = None
    manager_id: Optional[int] = None
    created_date: Optional[datetime] = None
    updated_date: Optional[datetime] = None


@dataclass(eq=False)
class EmpNoId:
    """Table whose key is supplied by the caller."""

    id: int = 0
    name: Optional[str] = None
    manager_id: Optional[int] = None


EMPLOYEE_SCHEMA = TableSchema.build(
    "dbo.Employees",
    [
        ColumnDescriptor("Id", ScalarType.INT32, GenerationKind.IDENTITY, attribute="id", nullable=False),
        ColumnDescriptor("Name", ScalarType.TEXT, attribute="name"),
        ColumnDescriptor("ManagerId", ScalarType.INT32, attribute="manager_id"),
        ColumnDescriptor("CreatedDate", ScalarType.DATETIME, GenerationKind.COMPUTED, attribute="created_date"),
        ColumnDescriptor("UpdatedDate", ScalarType.DATETIME, GenerationKind.COMPUTED, attribute="updated_date"),
    ],
    keys=["Id"],
)

EMP_NO_ID_SCHEMA = TableSchema.build(
    "dbo.EmpNoIds",
    [
        ColumnDescriptor("Id", ScalarType.INT32, attribute="id", nullable=False),
        ColumnDescriptor("Name", ScalarType.TEXT, attribute="name"),
        ColumnDescriptor("ManagerId", ScalarType.INT32, attribute="manager_id"),
    ],
    keys=["Id"],
)


class FakeConnection:
    """
    Connection double recording every statement.

    ``query_handler`` receives the SQL and the connection and returns the
    rows of the query, so tests can derive output rows from staged data.
    """

    database_type = DatabaseType.SQLSERVER

    def __init__(
        self,
        is_open: bool = True,
        query_handler: Optional[Callable[[str, "FakeConnection"], list[dict]]] = None,
        rowcount: int = 0,
    ):
        self._open = is_open
        self.query_handler = query_handler
        self.rowcount = rowcount
        self.statements: list[tuple[str, Any]] = []
        self.bulk_writes: list[tuple[str, list[tuple]]] = []
        self.queries: list[str] = []
        self.open_calls = 0
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True
        self.open_calls += 1

    def close(self) -> None:
        self._open = False
        self.close_calls += 1

    def execute(self, sql: str, params=None) -> int:
        assert self._open, "statement executed on a closed connection"
        self.statements.append((sql, params))
        return self.rowcount

    def executemany(self, sql: str, rows, fast: bool = True) -> None:
        assert self._open, "bulk insert on a closed connection"
        self.bulk_writes.append((sql, list(rows)))

    def query(self, sql: str, params=None) -> list[dict]:
        assert self._open, "query on a closed connection"
        self.queries.append(sql)
        if self.query_handler is None:
            return []
        return self.query_handler(sql, self)

    @property
    def sql(self) -> list[str]:
        """Executed statements without parameters, in order."""
        return [statement for statement, _ in self.statements]

    def staged_rows(self) -> list[tuple]:
        """Rows of every bulk write, in order."""
        return [row for _, rows in self.bulk_writes for row in rows]


@pytest.fixture
def employee_cls() -> type:
    return Employee


@pytest.fixture
def emp_no_id_cls() -> type:
    return EmpNoId


@pytest.fixture
def employee_schema() -> TableSchema:
    return EMPLOYEE_SCHEMA


@pytest.fixture
def emp_no_id_schema() -> TableSchema:
    return EMP_NO_ID_SCHEMA


@pytest.fixture
def catalog() -> RegisteredSchemaCatalog:
    catalog = RegisteredSchemaCatalog()
    catalog.register(Employee, EMPLOYEE_SCHEMA)
    catalog.register(EmpNoId, EMP_NO_ID_SCHEMA)
    return catalog


@pytest.fixture
def fake_connection_factory() -> Callable[..., FakeConnection]:
    return FakeConnection


@pytest.fixture
def fake_connection() -> FakeConnection:
    return FakeConnection()
