"""
Refresh policy and output-column selection.

Decides which server-generated values a MERGE must report back, and which
columns correlate a reported row with the in-memory record it came from.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from .schema import ColumnDescriptor, TableSchema
from .sql import generate_output_table_ddl, generate_select_sql, old_column_name

logger = logging.getLogger(__name__)

OUTPUT_TABLE_SUFFIX = "OutValues"


class RefreshPolicy(str, Enum):
    """Which generated values are read back after a synchronization."""

    NONE = "none"
    IDENTITY = "identity"
    ALL = "all"


@dataclass
class OutputCapture:
    """
    Column set captured through ``OUTPUT ... INTO`` for one run.

    Attributes:
        table_name: Destination table the values come from
        output_table: Temp table receiving the output rows
        keys: Correlation key columns, in declared order
        columns: Captured generated columns that are not keys
    """

    table_name: str
    output_table: str
    keys: dict[str, ColumnDescriptor]
    columns: dict[str, ColumnDescriptor] = field(default_factory=dict)

    @property
    def all_columns(self) -> dict[str, ColumnDescriptor]:
        """Columns assigned onto records: keys first, then captured columns."""
        merged = dict(self.keys)
        for name, column in self.columns.items():
            merged.setdefault(name, column)
        return merged

    @property
    def table_sql(self) -> str:
        return generate_output_table_ddl(self.output_table, self.keys, self.columns)

    @property
    def select_sql(self) -> str:
        selected = [old_column_name(k) for k in self.keys] + list(self.all_columns)
        return generate_select_sql(self.output_table, selected)


def select_output_columns(
    schema: TableSchema,
    has_inserts: bool,
    has_updates: bool,
    policy: RefreshPolicy,
    staging_table: str,
) -> OutputCapture | None:
    """
    Pick the correlation keys and captured columns for a run.

    IDENTITY reads back identity columns when rows are inserted. ALL also
    reads back computed columns whenever rows are inserted or updated; if no
    identity column was selected, the primary key correlates the rows.

    Args:
        schema: Destination table schema
        has_inserts: Whether the run inserts rows
        has_updates: Whether the run updates rows
        policy: Requested refresh policy
        staging_table: Staging table name; the output table is derived from it

    Returns:
        OutputCapture, or None when nothing is captured
    """
    if policy == RefreshPolicy.NONE:
        return None

    keys: dict[str, ColumnDescriptor] = {}
    columns: dict[str, ColumnDescriptor] = {}

    if has_inserts:
        keys.update(schema.identity_columns())

    if policy == RefreshPolicy.ALL and (has_inserts or has_updates):
        columns = {
            name: column
            for name, column in schema.computed_columns().items()
            if name not in keys
        }
        if columns and not keys:
            keys = schema.key_columns()

    if not keys:
        logger.debug(f"No output capture for {schema.name} (policy={policy.value})")
        return None

    capture = OutputCapture(
        table_name=schema.name,
        output_table=f"{staging_table}{OUTPUT_TABLE_SUFFIX}",
        keys=keys,
        columns=columns,
    )
    logger.debug(
        f"Capturing {list(capture.all_columns)} from {schema.name} "
        f"keyed by {list(keys)}"
    )
    return capture
