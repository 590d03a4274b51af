"""
Caller-facing entry points for bulk synchronization.

``BulkSynchronizer`` binds a connection, a schema catalog and a bulk
transfer provider, and exposes the synchronization operations:

* ``bulk_update``: tracked records, classified by their tracking state
* ``bulk_update_sets``: explicit insert/update/delete lists
* ``bulk_update_combined``: upsert and delete lists (deprecated)
* ``insert_or_update``: one record, one parameterized MERGE
* ``delete_by_attribute``: direct delete of every row matching a value
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Iterable, Optional

from utils.database_types import DatabaseType
from utils.metrics import SyncMetrics
from utils.tracing import trace_function, trace_sql_statement

from .capture import RefreshPolicy
from .config import SyncSettings
from .errors import UnsupportedProviderError
from .pipeline import StagingPipeline, SyncResult
from .schema import SchemaCatalog
from .sql import generate_delete_by_column_sql, generate_upsert_sql
from .tracking import ChangeSet, ChangeTracker, accept_changes, classify_changes, split_by_identity
from .transfer import BulkTransferProvider, FastExecuteManyProvider

logger = logging.getLogger(__name__)


def _record_type_of(records: list[Any], record_type: Optional[type]) -> Optional[type]:
    if record_type is not None:
        return record_type
    if not records:
        return None

    types = {type(record) for record in records}
    if len(types) > 1:
        names = ", ".join(sorted(t.__name__ for t in types))
        raise ValueError(f"Records of one type expected, got: {names}")
    return types.pop()


class BulkSynchronizer:
    """
    Bulk synchronization of in-memory records with SQL Server tables.

    Args:
        connection: SQL Server connection; opened on demand and closed again
            if it was closed before the call
        catalog: Schema catalog for every record type used
        bulk_provider: Row transfer into staging tables (default:
            FastExecuteManyProvider)
        metrics: Prometheus metrics to record runs on (optional)

    Example:
        >>> synchronizer = BulkSynchronizer(connection, catalog)
        >>> tracker.add(Employee(name="Ada"))
        >>> synchronizer.bulk_update(employees, tracker)
        >>> employees[0].id  # assigned by SQL Server
        17
    """

    def __init__(
        self,
        connection: Any,
        catalog: SchemaCatalog,
        bulk_provider: Optional[BulkTransferProvider] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        self.connection = connection
        self.catalog = catalog
        self.pipeline = StagingPipeline(catalog, bulk_provider or FastExecuteManyProvider())
        self.metrics = metrics

    @classmethod
    def from_settings(
        cls,
        settings: SyncSettings,
        catalog: SchemaCatalog,
        connection: Optional[Any] = None,
        metrics: Optional[SyncMetrics] = None,
    ) -> "BulkSynchronizer":
        """
        Synchronizer configured from settings.

        Staging transfers send ``settings.batch_size`` rows per round trip.
        Without a connection, a ``SqlServerConnection`` is built from the
        same settings.
        """
        if connection is None:
            from .connection import SqlServerConnection

            connection = SqlServerConnection.from_settings(settings)

        provider = FastExecuteManyProvider(batch_size=settings.batch_size)
        return cls(connection, catalog, bulk_provider=provider, metrics=metrics)

    @trace_function("bulk_sync.bulk_update")
    def bulk_update(
        self,
        records: Iterable[Any],
        tracker: ChangeTracker,
        refresh_policy: RefreshPolicy = RefreshPolicy.ALL,
        record_type: Optional[type] = None,
    ) -> SyncResult:
        """
        Persist tracked records according to their tracking state.

        Inserts always get their identities back: a NONE policy is treated
        as IDENTITY. On success the tracker marks inserts and updates
        unchanged and stops tracking deleted records.

        Args:
            records: Records of one type, all registered with the tracker
            tracker: Tracking state of the records
            refresh_policy: Generated values to read back
            record_type: Record type, required only when records is empty

        Raises:
            UntrackedRecordError: If a record is not tracked
        """
        records = list(records)
        if refresh_policy == RefreshPolicy.NONE:
            refresh_policy = RefreshPolicy.IDENTITY

        change_set = classify_changes(records, tracker)
        result = self._synchronize(_record_type_of(records, record_type), change_set, refresh_policy)
        accept_changes(change_set, tracker)
        return result

    @trace_function("bulk_sync.bulk_update_sets")
    def bulk_update_sets(
        self,
        record_type: type,
        inserts: Optional[Iterable[Any]] = None,
        updates: Optional[Iterable[Any]] = None,
        deletes: Optional[Iterable[Any]] = None,
        refresh_policy: RefreshPolicy = RefreshPolicy.NONE,
    ) -> SyncResult:
        """Persist explicit insert, update and delete lists (any may be empty)."""
        change_set = ChangeSet(
            inserts=list(inserts or []),
            updates=list(updates or []),
            deletes=list(deletes or []),
        )
        return self._synchronize(record_type, change_set, refresh_policy)

    def bulk_update_combined(
        self,
        record_type: type,
        update_list: Optional[Iterable[Any]] = None,
        delete_list: Optional[Iterable[Any]] = None,
    ) -> SyncResult:
        """
        Persist an upsert list and a delete list without refresh.

        Records with a zero identity are inserted, the rest updated.

        .. deprecated::
            Use ``bulk_update_sets``; identities are not read back here.
        """
        schema = self.catalog.schema(record_type)
        change_set = split_by_identity(schema, update_list or [], delete_list or [])
        return self._synchronize(record_type, change_set, RefreshPolicy.NONE)

    @trace_function("bulk_sync.insert_or_update")
    def insert_or_update(self, record: Any) -> int:
        """
        Insert the record, or update its non-key columns if its key exists.

        Generated values are not read back.

        Returns:
            Rows affected
        """
        schema = self.catalog.schema(type(record))
        sql = generate_upsert_sql(schema)
        params = [column.get_value(record) for column in schema.columns.values()]

        with self._opened():
            with trace_sql_statement(sql, schema.name):
                rows = self.connection.execute(sql, params)

        logger.info(f"Upserted 1 record into {schema.name}")
        return rows

    @trace_function("bulk_sync.delete_by_attribute")
    def delete_by_attribute(self, record_type: type, attribute: str, value: Any) -> int:
        """
        Delete every row whose column for the attribute equals value.

        The attribute need not be a key, so this can remove many rows.

        Raises:
            ValueError: If no column maps to the attribute
        """
        schema = self.catalog.schema(record_type)
        column = schema.column_for_attribute(attribute)
        sql = generate_delete_by_column_sql(schema, column.name)

        with self._opened():
            with trace_sql_statement(sql, schema.name):
                rows = self.connection.execute(sql, [value])

        logger.info(f"Deleted {rows} rows from {schema.name} where {column.name} matched")
        return rows

    def _synchronize(
        self,
        record_type: Optional[type],
        change_set: ChangeSet,
        refresh_policy: RefreshPolicy,
    ) -> SyncResult:
        if record_type is None:
            return SyncResult(table_name="")

        table_name = self.catalog.table_name(record_type)
        start = time.perf_counter()
        try:
            result = self.pipeline.synchronize(
                self.connection, record_type, change_set, refresh_policy
            )
        except Exception:
            self._record_run(table_name, False, time.perf_counter() - start, change_set)
            logger.error(f"Bulk synchronization of {table_name} failed", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._record_run(table_name, True, duration, change_set, result.refreshed)
        logger.info(
            f"Synchronized {table_name}: {result.inserted} inserted, "
            f"{result.updated} updated, {result.deleted} deleted, "
            f"{result.refreshed} refreshed in {duration:.3f}s"
        )
        return result

    def _record_run(
        self,
        table_name: str,
        success: bool,
        duration: float,
        change_set: ChangeSet,
        refreshed: int = 0,
    ) -> None:
        if self.metrics is None:
            return
        self.metrics.record_run(
            table_name,
            success=success,
            duration=duration,
            inserted=len(change_set.inserts) if success else 0,
            updated=len(change_set.updates) if success else 0,
            deleted=len(change_set.deletes) if success else 0,
            refreshed=refreshed,
        )

    @contextmanager
    def _opened(self):
        """Open the connection for a block; close it only if it was closed."""
        database_type = DatabaseType.from_connection(self.connection)
        if not database_type.is_supported:
            raise UnsupportedProviderError(self.connection, database_type.value)

        was_closed = not self.connection.is_open
        if was_closed:
            self.connection.open()
        try:
            yield self.connection
        finally:
            if was_closed:
                self.connection.close()
