"""
Bulk row transfer into staging tables.

A provider loads a ``TabularBatch`` into a named table on an already open
connection. The pipeline owns table creation and the connection; providers
only move rows.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from utils.database_types import DatabaseType
from utils.sql_safety import quote_identifier, quote_table_name, validate_integer_param
from utils.tracing import trace_sql_statement

from .errors import UnsupportedProviderError
from .schema import ColumnDescriptor

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10_000


@dataclass
class TabularBatch:
    """Rows of a staging table: column names plus one value tuple per record."""

    columns: list[str]
    rows: list[tuple] = field(default_factory=list)

    @classmethod
    def from_records(
        cls, records: Iterable[Any], columns: Mapping[str, ColumnDescriptor]
    ) -> "TabularBatch":
        descriptors = list(columns.values())
        return cls(
            columns=list(columns),
            rows=[tuple(c.get_value(record) for c in descriptors) for record in records],
        )

    def chunks(self, size: int) -> Iterator[list[tuple]]:
        for start in range(0, len(self.rows), size):
            yield self.rows[start:start + size]

    def __len__(self) -> int:
        return len(self.rows)


class BulkTransferProvider(ABC):
    """Moves a batch of rows into a table in as few round trips as possible."""

    @abstractmethod
    def write_rows(self, connection: Any, destination_table: str, batch: TabularBatch) -> None:
        """
        Load every row of the batch into destination_table.

        Raises:
            UnsupportedProviderError: If the connection is not SQL Server
        """


class FastExecuteManyProvider(BulkTransferProvider):
    """
    Parameterized INSERT sent with pyodbc ``fast_executemany``.

    The driver packs each chunk into a single parameter array, so a chunk
    costs one round trip regardless of its size.
    """

    def __init__(self, batch_size: int = DEFAULT_BATCH_SIZE):
        validate_integer_param(batch_size, "batch_size", min_value=1)
        self.batch_size = batch_size

    def write_rows(self, connection: Any, destination_table: str, batch: TabularBatch) -> None:
        database_type = DatabaseType.from_connection(connection)
        if not database_type.is_supported:
            raise UnsupportedProviderError(connection, database_type.value)

        if not batch.rows:
            return

        placeholders = ", ".join(
            DatabaseType.SQLSERVER.get_placeholder(i) for i in range(len(batch.columns))
        )
        sql = (
            f"INSERT INTO {quote_table_name(destination_table)} "
            f"({', '.join(quote_identifier(c) for c in batch.columns)}) "
            f"VALUES ({placeholders})"
        )

        with trace_sql_statement(sql, destination_table, rows=len(batch)):
            for chunk in batch.chunks(self.batch_size):
                connection.executemany(sql, chunk)

        logger.debug(f"Transferred {len(batch)} rows into {destination_table}")
