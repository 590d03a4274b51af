"""
Change classification from tracking state.

The host mapper owns the tracking state of each record; the engine only
reads it (to split a collection into inserts, updates and deletes) and
writes it back once a synchronization has succeeded.
"""

import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from .errors import UntrackedRecordError
from .schema import TableSchema

logger = logging.getLogger(__name__)


class TrackingState(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    DETACHED = "detached"


@dataclass
class ChangeSet:
    """Records of one synchronization, split by the operation they need."""

    inserts: list[Any] = field(default_factory=list)
    updates: list[Any] = field(default_factory=list)
    deletes: list[Any] = field(default_factory=list)

    @property
    def upserts(self) -> list[Any]:
        """Inserts followed by updates, the rows staged for the MERGE."""
        return self.inserts + self.updates

    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)

    def __len__(self) -> int:
        return len(self.inserts) + len(self.updates) + len(self.deletes)


class ChangeTracker(ABC):
    """Access to the host mapper's per-record tracking state."""

    @abstractmethod
    def state_of(self, record: Any) -> TrackingState:
        """Current state; DETACHED when the record is not tracked."""

    @abstractmethod
    def set_state(self, record: Any, state: TrackingState) -> None:
        """Record a new state; DETACHED stops tracking the record."""


class InMemoryChangeTracker(ChangeTracker):
    """
    Tracker keyed by object identity.

    Records need not be hashable; the tracker holds a reference to each
    tracked record so its identity stays unique while tracked.
    """

    def __init__(self):
        self._entries: dict[int, tuple[Any, TrackingState]] = {}

    def state_of(self, record: Any) -> TrackingState:
        entry = self._entries.get(id(record))
        return entry[1] if entry is not None else TrackingState.DETACHED

    def set_state(self, record: Any, state: TrackingState) -> None:
        if state == TrackingState.DETACHED:
            self._entries.pop(id(record), None)
        else:
            self._entries[id(record)] = (record, state)

    def add(self, record: Any) -> Any:
        """Track a new, unsaved record."""
        self.set_state(record, TrackingState.ADDED)
        return record

    def attach(self, record: Any) -> Any:
        """Track a record loaded from the database."""
        self.set_state(record, TrackingState.UNCHANGED)
        return record

    def mark_modified(self, record: Any) -> None:
        self._require_tracked(record)
        if self.state_of(record) == TrackingState.UNCHANGED:
            self.set_state(record, TrackingState.MODIFIED)

    def mark_deleted(self, record: Any) -> None:
        self._require_tracked(record)
        if self.state_of(record) == TrackingState.ADDED:
            # never persisted, nothing to delete
            self.set_state(record, TrackingState.DETACHED)
        else:
            self.set_state(record, TrackingState.DELETED)

    def _require_tracked(self, record: Any) -> None:
        if id(record) not in self._entries:
            raise UntrackedRecordError(record)

    def __contains__(self, record: Any) -> bool:
        return id(record) in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def classify_changes(records: Iterable[Any], tracker: ChangeTracker) -> ChangeSet:
    """
    Split records by tracking state.

    Unchanged records are skipped; input order is kept within each list.

    Raises:
        UntrackedRecordError: On the first record the tracker does not know
    """
    change_set = ChangeSet()
    targets = {
        TrackingState.ADDED: change_set.inserts,
        TrackingState.MODIFIED: change_set.updates,
        TrackingState.DELETED: change_set.deletes,
    }

    for record in records:
        state = tracker.state_of(record)
        if state == TrackingState.DETACHED:
            raise UntrackedRecordError(record)
        if state in targets:
            targets[state].append(record)

    logger.debug(
        f"Classified changes: {len(change_set.inserts)} inserts, "
        f"{len(change_set.updates)} updates, {len(change_set.deletes)} deletes"
    )
    return change_set


def accept_changes(change_set: ChangeSet, tracker: ChangeTracker) -> None:
    """Mark a synchronized change set as persisted."""
    for record in change_set.upserts:
        tracker.set_state(record, TrackingState.UNCHANGED)
    for record in change_set.deletes:
        tracker.set_state(record, TrackingState.DETACHED)


def split_by_identity(
    schema: TableSchema,
    update_list: Iterable[Any],
    delete_list: Iterable[Any],
) -> ChangeSet:
    """
    Build a change set from an upsert list and a delete list.

    Records whose first identity column is zero (or unset) are inserts, the
    rest updates. Without an identity column every record is an update.

    .. deprecated::
        Use tracked synchronization or explicit insert/update/delete lists.
    """
    warnings.warn(
        "split_by_identity is deprecated; pass explicit inserts and updates instead",
        DeprecationWarning,
        stacklevel=2,
    )

    identity = next(iter(schema.identity_columns().values()), None)
    change_set = ChangeSet(deletes=list(delete_list))

    for record in update_list:
        if identity is not None and identity.get_value(record) in (0, None):
            change_set.inserts.append(record)
        else:
            change_set.updates.append(record)

    return change_set
