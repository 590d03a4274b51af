"""
Bulk synchronization of in-memory records with SQL Server tables.

Changed records are staged in session temp tables, applied with a single
MERGE (plus one DELETE for removed records), and server-generated values are
read back onto the records.
"""

from .capture import OutputCapture, RefreshPolicy, select_output_columns
from .config import SyncSettings
from .errors import (
    BulkSyncError,
    RefreshCorrelationError,
    SchemaNotFoundError,
    StatementExecutionError,
    UnsupportedColumnTypeError,
    UnsupportedProviderError,
    UntrackedRecordError,
)
from .pipeline import StagingPipeline, SyncResult
from .schema import (
    ColumnDescriptor,
    GenerationKind,
    RegisteredSchemaCatalog,
    ScalarType,
    SchemaCatalog,
    TableSchema,
)
from .synchronizer import BulkSynchronizer
from .tracking import (
    ChangeSet,
    ChangeTracker,
    InMemoryChangeTracker,
    TrackingState,
    accept_changes,
    classify_changes,
)
from .transfer import BulkTransferProvider, FastExecuteManyProvider, TabularBatch

__version__ = "1.0.0"

__all__ = [
    "BulkSynchronizer",
    "StagingPipeline",
    "SyncResult",
    "SyncSettings",
    "RefreshPolicy",
    "OutputCapture",
    "select_output_columns",
    "ColumnDescriptor",
    "GenerationKind",
    "ScalarType",
    "TableSchema",
    "SchemaCatalog",
    "RegisteredSchemaCatalog",
    "ChangeSet",
    "ChangeTracker",
    "InMemoryChangeTracker",
    "TrackingState",
    "classify_changes",
    "accept_changes",
    "BulkTransferProvider",
    "FastExecuteManyProvider",
    "TabularBatch",
    "BulkSyncError",
    "UntrackedRecordError",
    "UnsupportedProviderError",
    "UnsupportedColumnTypeError",
    "SchemaNotFoundError",
    "RefreshCorrelationError",
    "StatementExecutionError",
]
