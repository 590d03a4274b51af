"""
Unit tests for output-column selection

Tests verify:
- Policy handling (NONE, IDENTITY, ALL)
- Primary key fallback for update-only ALL runs
- Output table naming, DDL and select statement
"""

from bulk_sync.capture import OutputCapture, RefreshPolicy, select_output_columns
from bulk_sync.schema import ColumnDescriptor, GenerationKind, ScalarType, TableSchema

STAGING = "#Employee412"


class TestSelectOutputColumns:
    """Test select_output_columns policy rules"""

    def test_none_policy_captures_nothing(self, employee_schema):
        """Test NONE never captures"""
        assert select_output_columns(employee_schema, True, True, RefreshPolicy.NONE, STAGING) is None

    def test_identity_policy_with_inserts(self, employee_schema):
        """Test IDENTITY captures identity columns when inserting"""
        capture = select_output_columns(employee_schema, True, False, RefreshPolicy.IDENTITY, STAGING)

        assert capture is not None
        assert list(capture.keys) == ["Id"]
        assert capture.columns == {}
        assert capture.output_table == "#Employee412OutValues"

    def test_identity_policy_update_only(self, employee_schema):
        """Test IDENTITY has nothing to read back without inserts"""
        assert select_output_columns(employee_schema, False, True, RefreshPolicy.IDENTITY, STAGING) is None

    def test_all_policy_with_inserts(self, employee_schema):
        """Test ALL captures identity and computed columns when inserting"""
        capture = select_output_columns(employee_schema, True, True, RefreshPolicy.ALL, STAGING)

        assert list(capture.keys) == ["Id"]
        assert list(capture.columns) == ["CreatedDate", "UpdatedDate"]
        assert list(capture.all_columns) == ["Id", "CreatedDate", "UpdatedDate"]

    def test_all_policy_update_only_falls_back_to_primary_key(self, employee_schema):
        """Test update-only ALL runs correlate computed columns by primary key"""
        capture = select_output_columns(employee_schema, False, True, RefreshPolicy.ALL, STAGING)

        assert capture is not None
        assert list(capture.keys) == ["Id"]
        assert list(capture.columns) == ["CreatedDate", "UpdatedDate"]

    def test_all_policy_without_generated_columns(self, emp_no_id_schema):
        """Test tables without generated columns capture nothing"""
        assert select_output_columns(emp_no_id_schema, True, True, RefreshPolicy.ALL, STAGING) is None

    def test_all_policy_without_identity_uses_business_key(self):
        """Test computed columns on a table keyed by caller values"""
        schema = TableSchema.build(
            "dbo.Accounts",
            [
                ColumnDescriptor("Code", ScalarType.TEXT),
                ColumnDescriptor("Region", ScalarType.TEXT),
                ColumnDescriptor("Balance", ScalarType.DECIMAL),
                ColumnDescriptor("ModifiedAt", ScalarType.DATETIME, GenerationKind.COMPUTED),
            ],
            keys=["Code", "Region"],
        )

        capture = select_output_columns(schema, True, False, RefreshPolicy.ALL, "#Account3")

        assert list(capture.keys) == ["Code", "Region"]
        assert list(capture.columns) == ["ModifiedAt"]

    def test_nothing_to_write(self, employee_schema):
        """Test runs without inserts or updates capture nothing"""
        assert select_output_columns(employee_schema, False, False, RefreshPolicy.ALL, STAGING) is None


class TestOutputCapture:
    """Test OutputCapture statements"""

    def test_table_sql(self, employee_schema):
        capture = OutputCapture(
            table_name=employee_schema.name,
            output_table="#Employee1OutValues",
            keys=employee_schema.identity_columns(),
            columns=employee_schema.computed_columns(),
        )

        assert capture.table_sql.startswith("CREATE TABLE [#Employee1OutValues]")
        assert "[Old_Id] int" in capture.table_sql

    def test_select_sql_lists_old_keys_first(self, employee_schema):
        capture = OutputCapture(
            table_name=employee_schema.name,
            output_table="#Employee1OutValues",
            keys=employee_schema.identity_columns(),
            columns=employee_schema.computed_columns(),
        )

        assert capture.select_sql == (
            "SELECT [Old_Id], [Id], [CreatedDate], [UpdatedDate] FROM [#Employee1OutValues]"
        )
