"""
Unit tests for bulk row transfer
"""

from unittest.mock import Mock

import pytest

from bulk_sync.errors import UnsupportedProviderError
from bulk_sync.transfer import FastExecuteManyProvider, TabularBatch
from utils.database_types import DatabaseType


class TestTabularBatch:
    """Test TabularBatch construction"""

    def test_from_records_follows_column_order(self, employee_cls, employee_schema):
        records = [employee_cls(id=1, name="a", manager_id=None), employee_cls(id=2, name="b", manager_id=1)]

        batch = TabularBatch.from_records(records, employee_schema.columns)

        assert batch.columns == ["Id", "Name", "ManagerId", "CreatedDate", "UpdatedDate"]
        assert batch.rows == [(1, "a", None, None, None), (2, "b", 1, None, None)]
        assert len(batch) == 2

    def test_key_only_batch(self, employee_cls, employee_schema):
        batch = TabularBatch.from_records([employee_cls(id=4)], employee_schema.key_columns())

        assert batch.columns == ["Id"]
        assert batch.rows == [(4,)]

    def test_chunks(self):
        batch = TabularBatch(columns=["Id"], rows=[(i,) for i in range(5)])

        assert [len(chunk) for chunk in batch.chunks(2)] == [2, 2, 1]


class TestFastExecuteManyProvider:
    """Test FastExecuteManyProvider"""

    def test_rejects_invalid_batch_size(self):
        with pytest.raises(ValueError, match="batch_size"):
            FastExecuteManyProvider(batch_size=0)

    def test_writes_parameterized_insert_in_chunks(self, fake_connection):
        batch = TabularBatch(columns=["Id", "Name"], rows=[(1, "a"), (2, "b"), (3, "c")])

        FastExecuteManyProvider(batch_size=2).write_rows(fake_connection, "#Employee5", batch)

        assert [sql for sql, _ in fake_connection.bulk_writes] == [
            "INSERT INTO [#Employee5] ([Id], [Name]) VALUES (?, ?)",
        ] * 2
        assert [rows for _, rows in fake_connection.bulk_writes] == [[(1, "a"), (2, "b")], [(3, "c")]]

    def test_empty_batch_sends_nothing(self, fake_connection):
        FastExecuteManyProvider().write_rows(fake_connection, "#Employee5", TabularBatch(columns=["Id"]))

        assert fake_connection.bulk_writes == []

    def test_rejects_non_sqlserver_connection(self):
        connection = Mock()
        connection.database_type = DatabaseType.SQLITE
        batch = TabularBatch(columns=["Id"], rows=[(1,)])

        with pytest.raises(UnsupportedProviderError, match="sqlite"):
            FastExecuteManyProvider().write_rows(connection, "#Employee5", batch)

        connection.executemany.assert_not_called()
