"""
Staging/merge pipeline.

One synchronization of a change set against its table:

1. Stage inserts and updates in a session temp table mirroring the
   destination, bulk load them and apply a single MERGE. When generated
   values are read back, the MERGE writes them to an output temp table and
   they are correlated onto the records.
2. Stage the keys of deleted records in a second temp table and delete every
   matching row with one statement.

Statements run in autocommit mode and are not retried. A failure aborts the
remaining steps and may leave temp tables on the session; they disappear
with the session.
"""

import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from utils.database_types import DatabaseType
from utils.logging import ContextLogger
from utils.tracing import add_span_attributes, trace_operation, trace_sql_statement

from .capture import OutputCapture, RefreshPolicy, select_output_columns
from .correlation import refresh_records
from .errors import UnsupportedProviderError
from .schema import ColumnDescriptor, SchemaCatalog, TableSchema
from .sql import (
    generate_delete_sql,
    generate_drop_table_sql,
    generate_merge_sql,
    generate_table_ddl,
)
from .tracking import ChangeSet
from .transfer import BulkTransferProvider, TabularBatch

logger = logging.getLogger(__name__)

# Unsaved rows get strictly negative stand-in identities so their output rows
# can be told apart from real ones
PLACEHOLDER_IDENTITY_SEED = -100
PLACEHOLDER_IDENTITY_STEP = -1

DELETE_TABLE_SUFFIX = "DelKeys"


@dataclass
class SyncResult:
    """Outcome of one synchronization."""

    table_name: str
    inserted: int = 0
    updated: int = 0
    deleted: int = 0
    refreshed: int = 0
    merged_rows: int = 0
    deleted_rows: int = 0


def staging_table_name(record_type: type) -> str:
    """Session temp table name: ``#<TypeName><milliseconds % 1000>``."""
    millis = int(time.time() * 1000) % 1000
    return f"#{record_type.__name__}{millis}"


def assign_placeholder_identities(
    records: Iterable[Any], columns: Mapping[str, ColumnDescriptor]
) -> int:
    """
    Give unsaved records placeholder identities.

    Every identity column holding zero (or nothing) gets the next value of
    -100, -101, -102... in record order.

    Returns:
        Number of values assigned
    """
    identities = [column for column in columns.values() if column.is_identity]
    if not identities:
        return 0

    placeholders = itertools.count(PLACEHOLDER_IDENTITY_SEED, PLACEHOLDER_IDENTITY_STEP)
    assigned = 0
    for record in records:
        for column in identities:
            if column.get_value(record) in (0, None):
                column.set_value(record, next(placeholders))
                assigned += 1
    return assigned


class StagingPipeline:
    """
    Applies change sets through staging tables.

    Inserts and updates of one run go through a single MERGE, and SQL Server
    checks foreign keys when that statement completes. Rows of a
    self-referencing table may therefore point at each other in any staging
    order, as long as the referenced keys are known to the caller. A record
    cannot reference a row inserted in the same run through its identity:
    that value only exists after the MERGE. Insert the referenced record
    first, or in an earlier run, and set the reference in a later one.

    Args:
        catalog: Resolves the destination schema of each record type
        bulk_provider: Loads staged rows into temp tables
    """

    def __init__(self, catalog: SchemaCatalog, bulk_provider: BulkTransferProvider):
        self.catalog = catalog
        self.bulk_provider = bulk_provider

    def synchronize(
        self,
        connection: Any,
        record_type: type,
        change_set: ChangeSet,
        refresh_policy: RefreshPolicy = RefreshPolicy.NONE,
    ) -> SyncResult:
        """
        Persist a change set and refresh the records as requested.

        The connection is opened if needed and closed again only when it was
        closed on entry.

        Args:
            connection: SQL Server connection (``SqlServerConnection`` or
                compatible)
            record_type: Type of every record in the change set
            change_set: Records to insert, update and delete
            refresh_policy: Generated values to read back onto records

        Returns:
            SyncResult with staged record counts and affected rows

        Raises:
            UnsupportedProviderError: If the connection is not SQL Server
            SchemaNotFoundError: If the record type has no schema
            StatementExecutionError: If a statement fails
            RefreshCorrelationError: If output rows cannot be paired with records
        """
        database_type = DatabaseType.from_connection(connection)
        if not database_type.is_supported:
            raise UnsupportedProviderError(connection, database_type.value)

        schema = self.catalog.schema(record_type)
        result = SyncResult(table_name=schema.name)

        if change_set.is_empty():
            logger.debug(f"Nothing to synchronize for {schema.name}")
            return result

        was_closed = not connection.is_open
        if was_closed:
            connection.open()

        try:
            staging_table = staging_table_name(record_type)
            log = ContextLogger(__name__, table=schema.name, staging_table=staging_table)

            with trace_operation(
                "bulk_sync.synchronize",
                table=schema.name,
                inserts=len(change_set.inserts),
                updates=len(change_set.updates),
                deletes=len(change_set.deletes),
                refresh_policy=refresh_policy.value,
            ):
                if change_set.inserts or change_set.updates:
                    self._merge_phase(
                        connection, schema, staging_table, change_set, refresh_policy, result, log
                    )

                if change_set.deletes:
                    self._delete_phase(
                        connection, schema, staging_table, change_set.deletes, result, log
                    )

                add_span_attributes(
                    merged_rows=result.merged_rows,
                    deleted_rows=result.deleted_rows,
                    refreshed=result.refreshed,
                )
        finally:
            if was_closed:
                connection.close()

        result.inserted = len(change_set.inserts)
        result.updated = len(change_set.updates)
        result.deleted = len(change_set.deletes)
        return result

    def _merge_phase(
        self,
        connection: Any,
        schema: TableSchema,
        staging_table: str,
        change_set: ChangeSet,
        refresh_policy: RefreshPolicy,
        result: SyncResult,
        log: ContextLogger,
    ) -> None:
        # Matched rows produce output only when the MERGE can update them
        refresh_updates = bool(change_set.updates and schema.updatable_column_names())
        refreshable = change_set.upserts if refresh_updates else change_set.inserts
        capture = select_output_columns(
            schema,
            has_inserts=bool(change_set.inserts),
            has_updates=refresh_updates,
            policy=refresh_policy,
            staging_table=staging_table,
        )

        with trace_operation("bulk_sync.stage", table=schema.name):
            self._execute(connection, generate_table_ddl(staging_table, schema.columns), staging_table)

            if capture is not None:
                self._execute(connection, capture.table_sql, capture.output_table)
                assigned = assign_placeholder_identities(change_set.inserts, capture.keys)
                if assigned:
                    log.debug("Assigned placeholder identities", placeholders=assigned)

            batch = TabularBatch.from_records(change_set.upserts, schema.columns)
            self.bulk_provider.write_rows(connection, staging_table, batch)
            log.info("Staged rows", rows=len(batch))

        with trace_operation("bulk_sync.merge", table=schema.name):
            merge_sql = self._merge_sql(staging_table, schema, capture)
            result.merged_rows = self._execute(connection, merge_sql, schema.name)
            log.info(
                "Merged staged rows",
                inserts=len(change_set.inserts),
                updates=len(change_set.updates),
                rows=result.merged_rows,
            )

        if capture is not None:
            result.refreshed = refresh_records(connection, capture, refreshable)
            log.info("Refreshed generated values", refreshed=result.refreshed)
            self._execute(connection, generate_drop_table_sql(capture.output_table), capture.output_table)

        self._execute(connection, generate_drop_table_sql(staging_table), staging_table)

    def _delete_phase(
        self,
        connection: Any,
        schema: TableSchema,
        staging_table: str,
        records: list[Any],
        result: SyncResult,
        log: ContextLogger,
    ) -> None:
        keys_table = f"{staging_table}{DELETE_TABLE_SUFFIX}"
        keys = schema.key_columns()

        with trace_operation("bulk_sync.delete", table=schema.name):
            self._execute(connection, generate_table_ddl(keys_table, keys), keys_table)
            self.bulk_provider.write_rows(
                connection, keys_table, TabularBatch.from_records(records, keys)
            )
            result.deleted_rows = self._execute(
                connection,
                generate_delete_sql(keys_table, schema.name, schema.key_names),
                schema.name,
            )
            self._execute(connection, generate_drop_table_sql(keys_table), keys_table)

        log.info("Deleted rows", deletes=len(records), rows=result.deleted_rows)

    @staticmethod
    def _merge_sql(staging_table: str, schema: TableSchema, capture: OutputCapture | None) -> str:
        if capture is None:
            return generate_merge_sql(staging_table, schema)
        return generate_merge_sql(
            staging_table,
            schema,
            output_table=capture.output_table,
            output_keys=capture.keys,
            output_columns=capture.columns,
        )

    @staticmethod
    def _execute(connection: Any, sql: str, table: str) -> int:
        with trace_sql_statement(sql, table):
            return connection.execute(sql)
