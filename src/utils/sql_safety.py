"""
SQL safety utilities for preventing SQL injection.

Every identifier that ends up in generated SQL is validated against a strict
ASCII pattern and then bracket-quoted for SQL Server. Values never pass
through these helpers: they travel as parameters or through bulk transfer.
"""

import re


# Strict ASCII-only patterns for SQL identifiers
VALID_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
VALID_SCHEMA_TABLE = re.compile(
    r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)?$"
)
# Session (#) and global (##) temp tables
VALID_TEMP_TABLE = re.compile(r"^##?[a-zA-Z_][a-zA-Z0-9_]*$")


def _strip_brackets(identifier: str) -> str:
    return identifier.replace("[", "").replace("]", "")


def validate_identifier(identifier: str) -> None:
    """
    Validate a SQL identifier (column name, unqualified table name).

    Args:
        identifier: The identifier to validate

    Raises:
        ValueError: If the identifier contains invalid characters
    """
    if not identifier:
        raise ValueError("SQL identifier cannot be empty")

    if not VALID_IDENTIFIER.fullmatch(identifier):
        raise ValueError(
            f"Invalid SQL identifier: {identifier!r}. "
            "Only ASCII letters, digits, and underscores are allowed, "
            "and must start with a letter or underscore."
        )


def validate_table_name(table_name: str) -> None:
    """
    Validate a table name: ``table``, ``schema.table`` or a ``#temp`` table.

    Raises:
        ValueError: If the name format is invalid
    """
    if not table_name:
        raise ValueError("Table name cannot be empty")

    clean = _strip_brackets(table_name)
    if VALID_TEMP_TABLE.fullmatch(clean) or VALID_SCHEMA_TABLE.fullmatch(clean):
        return

    raise ValueError(
        f"Invalid table name: {table_name!r}. "
        "Expected 'table', 'schema.table' or '#temp_table'."
    )


def is_temp_table(table_name: str) -> bool:
    """Return True for session or global temp table names."""
    return _strip_brackets(table_name).startswith("#")


def quote_identifier(identifier: str) -> str:
    """
    Bracket-quote a column name after validation.

    Already bracketed input is accepted and re-quoted.

    Raises:
        ValueError: If the identifier is invalid
    """
    clean = _strip_brackets(identifier)
    validate_identifier(clean)
    return f"[{clean}]"


def quote_table_name(table_name: str) -> str:
    """
    Bracket-quote a table name after validation.

    Examples:
        >>> quote_table_name("dbo.Employees")
        '[dbo].[Employees]'
        >>> quote_table_name("#Employee412")
        '[#Employee412]'

    Raises:
        ValueError: If the name is invalid
    """
    validate_table_name(table_name)
    clean = _strip_brackets(table_name)

    if clean.startswith("#"):
        return f"[{clean}]"

    if "." in clean:
        schema, table = clean.split(".", 1)
        return f"[{schema}].[{table}]"

    return f"[{clean}]"


def validate_integer_param(value: int, param_name: str, min_value: int = 0) -> None:
    """
    Validate an integer setting used to size SQL work (batch sizes, timeouts).

    Raises:
        ValueError: If the value is not a valid integer or below minimum
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(
            f"Invalid {param_name}: {value!r}. Must be an integer."
        )

    if value < min_value:
        raise ValueError(
            f"Invalid {param_name}: {value}. Must be >= {min_value}."
        )
