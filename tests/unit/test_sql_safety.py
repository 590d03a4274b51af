"""
Unit tests for identifier validation and bracket quoting

Generated statements interpolate only catalog names; these tests pin down
what the quoting helpers accept and reject.
"""

import pytest

from utils.database_types import DatabaseType
from utils.sql_safety import (
    is_temp_table,
    quote_identifier,
    quote_table_name,
    validate_identifier,
    validate_integer_param,
    validate_table_name,
)


class TestQuoteIdentifier:
    """Test column name quoting"""

    def test_simple(self):
        assert quote_identifier("ManagerId") == "[ManagerId]"

    def test_already_bracketed(self):
        assert quote_identifier("[Old_Id]") == "[Old_Id]"

    @pytest.mark.parametrize("malicious", [
        "Name]; DROP TABLE Users--",
        "Name' OR '1'='1",
        "Name/**/UNION/**/SELECT",
        "Na me",
        "Name\x00x",
        "1Name",
    ])
    def test_rejects_injection(self, malicious):
        with pytest.raises(ValueError, match="Invalid SQL identifier"):
            quote_identifier(malicious)

    def test_rejects_empty(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            validate_identifier("")


class TestQuoteTableName:
    """Test table name quoting"""

    @pytest.mark.parametrize("name,expected", [
        ("Employees", "[Employees]"),
        ("dbo.Employees", "[dbo].[Employees]"),
        ("[dbo].[Employees]", "[dbo].[Employees]"),
        ("#Employee412", "[#Employee412]"),
        ("#Employee412OutValues", "[#Employee412OutValues]"),
        ("##SharedStage", "[##SharedStage]"),
    ])
    def test_valid_names(self, name, expected):
        assert quote_table_name(name) == expected

    @pytest.mark.parametrize("malicious", [
        "Employees; DROP TABLE Users--",
        "dbo.Employees.extra",
        "#Emp loyee",
        "###Triple",
        "",
    ])
    def test_rejects_invalid(self, malicious):
        with pytest.raises(ValueError):
            validate_table_name(malicious)

    def test_is_temp_table(self):
        assert is_temp_table("#Employee1")
        assert is_temp_table("[#Employee1]")
        assert not is_temp_table("dbo.Employees")


class TestValidateIntegerParam:
    def test_accepts_valid(self):
        validate_integer_param(10, "batch_size", min_value=1)

    @pytest.mark.parametrize("value", [0, -5, "10", 1.5, True])
    def test_rejects_invalid(self, value):
        with pytest.raises(ValueError, match="batch_size"):
            validate_integer_param(value, "batch_size", min_value=1)


class TestDatabaseType:
    """Test connection kind detection"""

    def test_declared_type_wins(self):
        class Wrapper:
            database_type = DatabaseType.SQLSERVER

        assert DatabaseType.from_connection(Wrapper()) == DatabaseType.SQLSERVER

    def test_unknown_object(self):
        assert DatabaseType.from_connection(object()) == DatabaseType.UNKNOWN

    def test_only_sqlserver_supported(self):
        assert DatabaseType.SQLSERVER.is_supported
        assert not DatabaseType.POSTGRESQL.is_supported
        assert not DatabaseType.UNKNOWN.is_supported

    def test_placeholders(self):
        assert DatabaseType.SQLSERVER.get_placeholder(3) == "?"
        assert DatabaseType.POSTGRESQL.get_placeholder(0) == "$1"
