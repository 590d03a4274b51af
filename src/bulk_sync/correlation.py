"""
Correlation of MERGE output rows back onto in-memory records.

Each output row carries the key values the row was staged with
(``Old_<key>``) next to the values the server wrote. Output rows are indexed
by their staged key; each record looks its row up by its current key and
receives the written values. Lookups compare normalized key tuples, so two
different keys can never be mixed up.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Iterable

from utils.tracing import add_span_attributes, trace_operation

from .capture import OutputCapture
from .errors import RefreshCorrelationError
from .schema import ColumnDescriptor, ScalarType
from .sql import old_column_name

logger = logging.getLogger(__name__)


def normalize_key_value(column: ColumnDescriptor, value: Any) -> Any:
    """
    Canonical form of a key value for equality and hashing.

    The driver may return a different Python type than the record holds
    (``Decimal`` for an int, ``str`` for a GUID), so both sides are brought
    to one form per column type.
    """
    if value is None:
        return None

    if column.scalar_type.is_integer:
        return int(value)
    if column.scalar_type == ScalarType.DECIMAL:
        return Decimal(str(value)).normalize()
    if column.scalar_type == ScalarType.GUID:
        return str(value).lower()
    return value


def correlation_key(keys: dict[str, ColumnDescriptor], values: Iterable[Any]) -> tuple:
    return tuple(normalize_key_value(column, value) for column, value in zip(keys.values(), values))


def _assignable(current: Any, value: Any) -> Any:
    # GUIDs come back as strings unless the record already holds a UUID
    if isinstance(current, uuid.UUID) and isinstance(value, str):
        return uuid.UUID(value)
    return value


def refresh_records(connection: Any, capture: OutputCapture, records: list[Any]) -> int:
    """
    Assign captured values from the output table onto records.

    Args:
        connection: Open connection exposing ``query(sql) -> list[dict]``
        capture: Output capture used for the MERGE
        records: Staged inserts and updates, after placeholder assignment

    Returns:
        Number of records refreshed

    Raises:
        RefreshCorrelationError: When output rows and records do not pair up
            one to one
    """
    table = capture.table_name

    with trace_operation("bulk_sync.refresh", table=table, records=len(records)):
        rows = connection.query(capture.select_sql)

        by_key: dict[tuple, dict[str, Any]] = {}
        for row in rows:
            key = correlation_key(
                capture.keys, (row[old_column_name(name)] for name in capture.keys)
            )
            if key in by_key:
                raise RefreshCorrelationError(table, "duplicate output rows", key)
            by_key[key] = row

        assigned = capture.all_columns
        consumed: set[tuple] = set()
        refreshed = 0

        for record in records:
            key = correlation_key(
                capture.keys, (column.get_value(record) for column in capture.keys.values())
            )
            if key in consumed:
                raise RefreshCorrelationError(table, "two records share a correlation key", key)

            row = by_key.pop(key, None)
            if row is None:
                raise RefreshCorrelationError(table, "no output row for record", key)
            consumed.add(key)

            for name, column in assigned.items():
                column.set_value(record, _assignable(column.get_value(record), row[name]))
            refreshed += 1

        if by_key:
            raise RefreshCorrelationError(
                table, f"{len(by_key)} output rows matched no record", next(iter(by_key))
            )

        add_span_attributes(refreshed=refreshed)

    logger.debug(f"Refreshed {refreshed} records of {table} from {capture.output_table}")
    return refreshed
