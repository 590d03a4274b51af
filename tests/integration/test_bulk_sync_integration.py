"""
Integration tests for bulk synchronization against a real SQL Server.

Run with SQLSERVER_INTEGRATION=1 and the SQLSERVER_* connection variables
pointing at a disposable database. Each test works on its own freshly
created tables.
"""

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pytest

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        os.getenv("SQLSERVER_INTEGRATION") != "1",
        reason="SQLSERVER_INTEGRATION=1 not set",
    ),
]

pytest.importorskip("pyodbc")

from bulk_sync import (  # noqa: E402
    BulkSynchronizer,
    ColumnDescriptor,
    GenerationKind,
    InMemoryChangeTracker,
    RefreshPolicy,
    RegisteredSchemaCatalog,
    ScalarType,
    SyncSettings,
    TableSchema,
)
from bulk_sync.connection import SqlServerConnection  # noqa: E402
from bulk_sync.errors import StatementExecutionError  # noqa: E402
from bulk_sync.tracking import TrackingState  # noqa: E402


@dataclass(eq=False)
class Staff:
    id: int = 0
    name: Optional[str] = None
    manager_id: Optional[int] = None
    created_date: Optional[datetime] = None


@dataclass(eq=False)
class Badge:
    id: int = 0
    name: Optional[str] = None


@dataclass(eq=False)
class Mentor:
    id: int = 0
    name: Optional[str] = None
    mentor_id: Optional[int] = None
    sponsor_id: Optional[int] = None


STAFF_SCHEMA = TableSchema.build(
    "dbo.BulkSyncStaff",
    [
        ColumnDescriptor("Id", ScalarType.INT32, GenerationKind.IDENTITY, attribute="id", nullable=False),
        ColumnDescriptor("Name", ScalarType.TEXT, attribute="name"),
        ColumnDescriptor("ManagerId", ScalarType.INT32, attribute="manager_id"),
        ColumnDescriptor("CreatedDate", ScalarType.DATETIME, GenerationKind.COMPUTED, attribute="created_date"),
    ],
    keys=["Id"],
)

BADGE_SCHEMA = TableSchema.build(
    "dbo.BulkSyncBadges",
    [
        ColumnDescriptor("Id", ScalarType.INT32, attribute="id", nullable=False),
        ColumnDescriptor("Name", ScalarType.TEXT, attribute="name"),
    ],
    keys=["Id"],
)

MENTOR_SCHEMA = TableSchema.build(
    "dbo.BulkSyncMentors",
    [
        ColumnDescriptor("Id", ScalarType.INT32, attribute="id", nullable=False),
        ColumnDescriptor("Name", ScalarType.TEXT, attribute="name"),
        ColumnDescriptor("MentorId", ScalarType.INT32, attribute="mentor_id"),
        ColumnDescriptor("SponsorId", ScalarType.INT32, attribute="sponsor_id"),
    ],
    keys=["Id"],
)

TABLES_DDL = [
    "IF OBJECT_ID('dbo.BulkSyncStaff') IS NOT NULL DROP TABLE dbo.BulkSyncStaff",
    "IF OBJECT_ID('dbo.BulkSyncBadges') IS NOT NULL DROP TABLE dbo.BulkSyncBadges",
    "IF OBJECT_ID('dbo.BulkSyncMentors') IS NOT NULL DROP TABLE dbo.BulkSyncMentors",
    """
    CREATE TABLE dbo.BulkSyncStaff (
        Id int IDENTITY(1, 1) PRIMARY KEY,
        Name nvarchar(200) NULL,
        ManagerId int NULL REFERENCES dbo.BulkSyncStaff (Id),
        CreatedDate datetime2 NOT NULL DEFAULT SYSUTCDATETIME()
    )
    """,
    "CREATE TABLE dbo.BulkSyncBadges (Id int PRIMARY KEY, Name nvarchar(200) NULL)",
    """
    CREATE TABLE dbo.BulkSyncMentors (
        Id int PRIMARY KEY,
        Name nvarchar(200) NULL,
        MentorId int NULL REFERENCES dbo.BulkSyncMentors (Id),
        SponsorId int NULL REFERENCES dbo.BulkSyncMentors (Id)
    )
    """,
]


@pytest.fixture
def connection():
    conn = SqlServerConnection.from_settings(SyncSettings.from_env())
    conn.open()
    for statement in TABLES_DDL:
        conn.execute(statement)
    yield conn
    conn.close()


@pytest.fixture
def synchronizer(connection):
    catalog = RegisteredSchemaCatalog()
    catalog.register(Staff, STAFF_SCHEMA)
    catalog.register(Badge, BADGE_SCHEMA)
    catalog.register(Mentor, MENTOR_SCHEMA)
    return BulkSynchronizer(connection, catalog)


def table_rows(connection, table):
    return connection.query(f"SELECT * FROM {table} ORDER BY Id")


class TestTrackedSynchronization:
    def test_inserts_receive_identities_and_defaults(self, connection, synchronizer):
        tracker = InMemoryChangeTracker()
        records = [tracker.add(Staff(name="Ada")), tracker.add(Staff(name="Grace"))]

        result = synchronizer.bulk_update(records, tracker, refresh_policy=RefreshPolicy.ALL)

        rows = table_rows(connection, "dbo.BulkSyncStaff")
        assert result.inserted == 2
        assert result.refreshed == 2
        assert {r.name: r.id for r in records} == {row["Name"]: row["Id"] for row in rows}
        assert all(record.created_date is not None for record in records)

    def test_self_reference_after_insert(self, connection, synchronizer):
        tracker = InMemoryChangeTracker()
        manager = tracker.add(Staff(name="Manager"))
        report = tracker.add(Staff(name="Report"))
        synchronizer.bulk_update([manager, report], tracker)

        report.manager_id = manager.id
        tracker.mark_modified(report)
        synchronizer.bulk_update([manager, report], tracker)

        rows = {row["Name"]: row for row in table_rows(connection, "dbo.BulkSyncStaff")}
        assert rows["Report"]["ManagerId"] == manager.id
        assert rows["Manager"]["ManagerId"] is None

    def test_update_only_with_all_refresh(self, connection, synchronizer):
        tracker = InMemoryChangeTracker()
        record = tracker.add(Staff(name="Before"))
        synchronizer.bulk_update([record], tracker)
        created = record.created_date

        record.name = "After"
        record.created_date = None
        tracker.mark_modified(record)
        result = synchronizer.bulk_update([record], tracker, refresh_policy=RefreshPolicy.ALL)

        assert result.updated == 1
        assert result.refreshed == 1
        assert record.created_date == created
        assert table_rows(connection, "dbo.BulkSyncStaff")[0]["Name"] == "After"

    def test_delete_one_of_three(self, connection, synchronizer):
        tracker = InMemoryChangeTracker()
        records = [tracker.add(Staff(name=f"s{i}")) for i in range(3)]
        synchronizer.bulk_update(records, tracker)

        tracker.mark_deleted(records[1])
        result = synchronizer.bulk_update(records, tracker)

        assert result.deleted == 1
        assert [row["Name"] for row in table_rows(connection, "dbo.BulkSyncStaff")] == ["s0", "s2"]
        assert records[1] not in tracker

    def test_delete_roundtrip(self, connection, synchronizer):
        tracker = InMemoryChangeTracker()
        records = [tracker.add(Staff(name=f"s{i}")) for i in range(3)]
        synchronizer.bulk_update(records, tracker)
        assert len(table_rows(connection, "dbo.BulkSyncStaff")) == 3

        for record in records:
            tracker.mark_deleted(record)
        result = synchronizer.bulk_update(records, tracker)

        assert result.deleted == 3
        assert table_rows(connection, "dbo.BulkSyncStaff") == []
        assert all(record not in tracker for record in records)

    def test_reference_to_unsaved_identity_fails(self, connection, synchronizer):
        tracker = InMemoryChangeTracker()
        manager = tracker.add(Staff(name="Manager"))
        # The manager's identity is unknown until the MERGE completes
        report = tracker.add(Staff(name="Report", manager_id=manager.id))

        with pytest.raises(StatementExecutionError):
            synchronizer.bulk_update([manager, report], tracker)

        assert table_rows(connection, "dbo.BulkSyncStaff") == []
        assert tracker.state_of(report) == TrackingState.ADDED


class TestExplicitSets:
    def test_caller_supplied_keys(self, connection, synchronizer):
        synchronizer.bulk_update_sets(Badge, inserts=[Badge(1, "one"), Badge(2, "two")])
        synchronizer.bulk_update_sets(Badge, updates=[Badge(2, "TWO")], deletes=[Badge(1)])

        assert table_rows(connection, "dbo.BulkSyncBadges") == [{"Id": 2, "Name": "TWO"}]

    def test_insert_or_update_and_delete_by_attribute(self, connection, synchronizer):
        synchronizer.insert_or_update(Badge(5, "five"))
        synchronizer.insert_or_update(Badge(5, "FIVE"))
        assert table_rows(connection, "dbo.BulkSyncBadges") == [{"Id": 5, "Name": "FIVE"}]

        assert synchronizer.delete_by_attribute(Badge, "name", "FIVE") == 1
        assert table_rows(connection, "dbo.BulkSyncBadges") == []


class TestSelfReference:
    """Rows referencing each other by caller-supplied keys in one call"""

    def test_one_level_in_any_order(self, connection, synchronizer):
        mentors = [
            Mentor(1, "Mentor02", mentor_id=2),
            Mentor(5, "Mentor03", mentor_id=1),
            Mentor(2, "Mentor01"),
        ]

        result = synchronizer.bulk_update_sets(Mentor, inserts=mentors)

        assert result.inserted == 3
        rows = {row["Id"]: row["MentorId"] for row in table_rows(connection, "dbo.BulkSyncMentors")}
        assert rows == {1: 2, 2: None, 5: 1}

        synchronizer.bulk_update_sets(Mentor, deletes=mentors)
        assert table_rows(connection, "dbo.BulkSyncMentors") == []

    def test_three_levels_in_any_order(self, connection, synchronizer):
        mentors = [
            Mentor(1, "Mentor02", mentor_id=20, sponsor_id=8),
            Mentor(8, "Mentor02", mentor_id=10, sponsor_id=50),
            Mentor(10, "Mentor02", mentor_id=20),
            Mentor(50, "Mentor03", mentor_id=10),
            Mentor(20, "Mentor01"),
        ]

        synchronizer.bulk_update_sets(Mentor, inserts=mentors)

        assert len(table_rows(connection, "dbo.BulkSyncMentors")) == 5

        synchronizer.bulk_update_sets(Mentor, deletes=mentors)
        assert table_rows(connection, "dbo.BulkSyncMentors") == []

    def test_inserts_and_updates_reference_each_other(self, connection, synchronizer):
        synchronizer.bulk_update_sets(Mentor, inserts=[Mentor(1, "Existing")])

        synchronizer.bulk_update_sets(
            Mentor,
            inserts=[Mentor(2, "New", mentor_id=1)],
            updates=[Mentor(1, "Existing", mentor_id=2)],
        )

        rows = {row["Id"]: row["MentorId"] for row in table_rows(connection, "dbo.BulkSyncMentors")}
        assert rows == {1: 2, 2: 1}
