"""
Database statement tracing.

Wraps each statement a synchronization run sends to SQL Server in a CLIENT
span using the OpenTelemetry database semantic attribute names.
"""

from opentelemetry import trace

from .spans import trace_operation

# Keep span payloads bounded; MERGE text grows with column count
MAX_STATEMENT_LENGTH = 2048


def statement_verb(sql: str) -> str:
    """First keyword of a statement, upper-cased (``MERGE``, ``CREATE``...)."""
    stripped = sql.lstrip()
    return stripped.split(None, 1)[0].upper() if stripped else "UNKNOWN"


def trace_sql_statement(sql: str, table: str, database: str = "mssql", **extra_attrs):
    """
    Context manager for tracing a single SQL statement.

    Args:
        sql: Statement text (parameters are never included)
        table: Table the statement targets
        database: Database system name

    Example:
        >>> with trace_sql_statement(ddl, "#Employee412"):
        ...     cursor.execute(ddl)
    """
    verb = statement_verb(sql)
    return trace_operation(
        f"db.{verb.lower()}",
        kind=trace.SpanKind.CLIENT,
        **{
            "db.system": database,
            "db.operation": verb,
            "db.sql.table": table,
            "db.statement": sql[:MAX_STATEMENT_LENGTH],
            "component": "database",
            **extra_attrs,
        }
    )
