"""
SQL statement generation for the staging/merge pipeline.

Pure text generation, independent of any connection. Only structural names
resolved from the schema catalog are interpolated, always validated and
bracket-quoted; row values reach the server through bulk transfer or, for
the single-row helpers, as ``?`` parameters.
"""

from typing import Iterable, Mapping

from utils.database_types import DatabaseType
from utils.sql_safety import quote_identifier, quote_table_name

from .errors import UnsupportedColumnTypeError
from .schema import ColumnDescriptor, ScalarType, TableSchema

# Prefix of the pre-merge key columns in the output table
OLD_COLUMN_PREFIX = "Old_"

# Scale used when a decimal column does not declare one; a bare ``decimal``
# is decimal(18, 0) on SQL Server and would round staged values
DEFAULT_DECIMAL_PRECISION = 38
DEFAULT_DECIMAL_SCALE = 10

SQL_SERVER_TYPES: dict[ScalarType, str] = {
    ScalarType.INT16: "smallint",
    ScalarType.INT32: "int",
    ScalarType.INT64: "bigint",
    ScalarType.DATETIME: "datetime",
    ScalarType.TEXT: "nvarchar(MAX)",
    ScalarType.BOOLEAN: "bit",
    ScalarType.GUID: "uniqueidentifier",
}


def get_sql_type(column: ColumnDescriptor) -> str:
    """
    Staging column type for a catalog column.

    Raises:
        UnsupportedColumnTypeError: For types without a mapping
    """
    if column.scalar_type == ScalarType.DECIMAL:
        precision = column.precision or DEFAULT_DECIMAL_PRECISION
        scale = DEFAULT_DECIMAL_SCALE if column.scale is None else column.scale
        return f"decimal({precision}, {scale})"

    try:
        return SQL_SERVER_TYPES[column.scalar_type]
    except KeyError:
        raise UnsupportedColumnTypeError(column.scalar_type, column.name) from None


def old_column_name(key: str) -> str:
    return f"{OLD_COLUMN_PREFIX}{key}"


def _column_list(names: Iterable[str], prefix: str = "") -> str:
    return ", ".join(f"{prefix}{quote_identifier(name)}" for name in names)


def _key_predicate(keys: Iterable[str], left: str, right: str) -> str:
    return " AND ".join(
        f"{left}.{quote_identifier(k)} = {right}.{quote_identifier(k)}" for k in keys
    )


def generate_table_ddl(table_name: str, columns: Mapping[str, ColumnDescriptor]) -> str:
    """
    CREATE TABLE statement with one column per descriptor.

    Columns keep their names and map to equivalent SQL Server types; no
    constraints, identity or computed definitions are carried over, so every
    value can be bulk loaded as-is.
    """
    definitions = ",\n    ".join(
        f"{quote_identifier(name)} {get_sql_type(column)}"
        for name, column in columns.items()
    )
    return f"CREATE TABLE {quote_table_name(table_name)} (\n    {definitions}\n)"


def generate_output_table_ddl(
    table_name: str,
    keys: Mapping[str, ColumnDescriptor],
    columns: Mapping[str, ColumnDescriptor] | None = None,
) -> str:
    """
    CREATE TABLE for the MERGE output: ``Old_<key>`` pre-image columns, then
    the keys as written, then the captured generated columns.
    """
    all_columns: dict[str, ColumnDescriptor] = {
        old_column_name(name): column for name, column in keys.items()
    }
    all_columns.update(keys)
    for name, column in (columns or {}).items():
        all_columns.setdefault(name, column)

    return generate_table_ddl(table_name, all_columns)


def generate_merge_sql(
    staging_table: str,
    schema: TableSchema,
    output_table: str | None = None,
    output_keys: Iterable[str] = (),
    output_columns: Iterable[str] = (),
) -> str:
    """
    Single MERGE of the staging table into the destination table.

    Rows match on all key columns. Matched rows get every non-key,
    non-generated column; unmatched rows insert every non-generated column.
    A table without such columns has no WHEN MATCHED clause: matched rows
    are left as they are and write no output row.
    With an output table, each affected row writes the staged key values
    (``Old_<key>``) and the post-merge values of keys and captured columns.

    Args:
        staging_table: Temp table holding the staged rows
        schema: Destination table schema
        output_table: Table receiving the OUTPUT rows (None = no capture)
        output_keys: Correlation key columns to capture
        output_columns: Generated columns to capture besides the keys
    """
    destination = quote_table_name(schema.name)
    writable = schema.writable_column_names()
    updatable = schema.updatable_column_names()

    lines = [
        f"MERGE INTO {destination} dest",
        f"USING (SELECT * FROM {quote_table_name(staging_table)}) src",
        f"ON ({_key_predicate(schema.key_names, 'src', 'dest')})",
    ]

    if updatable:
        assignments = ", ".join(
            f"{quote_identifier(name)} = src.{quote_identifier(name)}" for name in updatable
        )
        lines.append(f"WHEN MATCHED THEN UPDATE SET {assignments}")

    if writable:
        lines.append(
            f"WHEN NOT MATCHED THEN INSERT ({_column_list(writable)}) "
            f"VALUES ({_column_list(writable, 'src.')})"
        )
    else:
        lines.append("WHEN NOT MATCHED THEN INSERT DEFAULT VALUES")

    keys = list(output_keys)
    if output_table is not None and keys:
        captured = keys + [c for c in output_columns if c not in keys]
        selected = ", ".join(
            [f"src.{quote_identifier(k)} {quote_identifier(old_column_name(k))}" for k in keys]
            + [f"inserted.{quote_identifier(c)}" for c in captured]
        )
        targets = _column_list([old_column_name(k) for k in keys] + captured)
        lines.append(f"OUTPUT {selected}")
        lines.append(f"INTO {quote_table_name(output_table)} ({targets})")

    return "\n".join(lines) + ";"


def generate_delete_sql(staging_table: str, destination: str, keys: Iterable[str]) -> str:
    """DELETE of every destination row whose key appears in the staging table."""
    quoted_destination = quote_table_name(destination)
    return (
        f"DELETE FROM {quoted_destination}\n"
        f"WHERE EXISTS (SELECT 1 FROM {quote_table_name(staging_table)} src "
        f"WHERE {_key_predicate(keys, 'src', quoted_destination)})"
    )


def generate_upsert_sql(schema: TableSchema) -> str:
    """
    Parameterized single-row MERGE (insert or update by key).

    Expects one ``?`` parameter per schema column, in schema column order.
    """
    placeholder = DatabaseType.SQLSERVER.get_placeholder
    source_columns = ", ".join(
        f"{placeholder(i)} {quote_identifier(name)}" for i, name in enumerate(schema.columns)
    )
    writable = schema.writable_column_names()
    updatable = schema.updatable_column_names()

    lines = [
        f"MERGE INTO {quote_table_name(schema.name)} dest",
        f"USING (SELECT {source_columns}) src",
        f"ON ({_key_predicate(schema.key_names, 'src', 'dest')})",
    ]
    if updatable:
        assignments = ", ".join(
            f"{quote_identifier(name)} = src.{quote_identifier(name)}" for name in updatable
        )
        lines.append(f"WHEN MATCHED THEN UPDATE SET {assignments}")
    if writable:
        lines.append(
            f"WHEN NOT MATCHED THEN INSERT ({_column_list(writable)}) "
            f"VALUES ({_column_list(writable, 'src.')})"
        )
    else:
        lines.append("WHEN NOT MATCHED THEN INSERT DEFAULT VALUES")

    return "\n".join(lines) + ";"


def generate_delete_by_column_sql(schema: TableSchema, column: str) -> str:
    """Parameterized DELETE of all rows whose column equals ``?``."""
    if column not in schema.columns:
        raise ValueError(f"Column {column!r} not found in {schema.name}")
    return (
        f"DELETE FROM {quote_table_name(schema.name)} "
        f"WHERE {quote_identifier(column)} = {DatabaseType.SQLSERVER.get_placeholder()}"
    )


def generate_select_sql(table_name: str, columns: Iterable[str] | None = None) -> str:
    column_list = _column_list(columns) if columns else "*"
    return f"SELECT {column_list} FROM {quote_table_name(table_name)}"


def generate_drop_table_sql(table_name: str) -> str:
    return f"DROP TABLE {quote_table_name(table_name)}"
