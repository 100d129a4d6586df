"""
Abstract Entity Store Interface

DESIGN DECISION: The core never talks to a database directly. It uses a
small generic store so that:
1. Tests run against an in-memory store
2. SQLite (or anything else) can be swapped in without touching rules
3. Every query is farm-scoped by construction

The interface is intentionally simple - we're not building a full ORM.
Records are addressed by their model's `collection`. Queries support
equality plus a handful of suffix operators:

    {"kind": MovementKind.DEPOSIT}
    {"event_type__in": [EventType.BIRTH, EventType.DEATH]}
    {"event_date__gte": start, "event_date__lte": end}
    {"next_due_date__isnull": False}

Soft-deleted records are excluded unless `include_deleted=True`.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Optional, TypeVar
from uuid import UUID

from farmledger.models.common import FarmRecord


R = TypeVar("R", bound=FarmRecord)

Filters = dict[str, Any]


class EntityStore(ABC):
    """
    Abstract interface for farm-scoped record storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def find(
        self,
        model: type[R],
        farm_id: Optional[UUID],
        filters: Optional[Filters] = None,
        *,
        include_deleted: bool = False,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[R]:
        """
        List records of a farm matching the filters.

        Args:
            model: Record class to query
            farm_id: Owning farm
            filters: Field filters (see module docstring)
            include_deleted: Also return soft-deleted records
            order_by: Field to sort by
            descending: Sort direction
            limit: Maximum number of results

        Returns:
            Matching records
        """
        pass

    @abstractmethod
    async def get(
        self,
        model: type[R],
        farm_id: Optional[UUID],
        record_id: UUID,
    ) -> Optional[R]:
        """
        Retrieve a single non-deleted record of a farm.

        Returns:
            The record if found in this farm, None otherwise
        """
        pass

    @abstractmethod
    async def insert(self, record: R) -> R:
        """
        Insert a new record.

        Raises:
            DuplicateError: If a record with the same id exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update_by_id(
        self,
        model: type[R],
        farm_id: Optional[UUID],
        record_id: UUID,
        patch: dict[str, Any],
        *,
        expected: Optional[dict[str, Any]] = None,
    ) -> R:
        """
        Apply a patch to a record and return the re-validated result.

        If `expected` is given, the update is a compare-and-swap: it is
        applied only when every expected field still holds that value.

        Raises:
            RecordNotFoundError: If the record doesn't exist in this farm
            ConflictError: If `expected` no longer matches
            StorageError: If the patched record is invalid or the write fails
        """
        pass

    @abstractmethod
    async def soft_delete(
        self,
        model: type[R],
        farm_id: Optional[UUID],
        record_id: UUID,
    ) -> bool:
        """
        Mark a record deleted.

        Returns:
            True if a live record was deleted, False if none was found
        """
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """
        Atomic unit of work.

        Writes made inside the block are all applied or, if the block
        raises, none are. Transactions are serialized against each other
        and against reads and writes made outside a transaction, so a
        rollback never discards another caller's committed write.
        """
        pass


# =============================================================================
# FILTER MATCHING (shared by backends that filter in Python)
# =============================================================================

_OPERATORS = {
    "eq": lambda value, arg: value == arg,
    "ne": lambda value, arg: value != arg,
    "in": lambda value, arg: value in arg,
    "gte": lambda value, arg: value is not None and value >= arg,
    "lte": lambda value, arg: value is not None and value <= arg,
    "gt": lambda value, arg: value is not None and value > arg,
    "lt": lambda value, arg: value is not None and value < arg,
    "isnull": lambda value, arg: (value is None) == bool(arg),
}


def split_filter_key(key: str) -> tuple[str, str]:
    """Split 'field__op' into (field, op); bare keys mean equality."""
    field, _, op = key.partition("__")
    op = op or "eq"
    if op not in _OPERATORS:
        raise ValueError(f"Unsupported filter operator: {op}")
    return field, op


def check_filters(filters: Optional[Filters]) -> None:
    """Reject unknown operators before any record is read."""
    for key in filters or ():
        split_filter_key(key)


def matches(record: FarmRecord, filters: Optional[Filters]) -> bool:
    """Check a record against every filter."""
    if not filters:
        return True
    for key, arg in filters.items():
        field, op = split_filter_key(key)
        if not _OPERATORS[op](getattr(record, field), arg):
            return False
    return True


def sort_records(
    records: list[R],
    order_by: Optional[str],
    descending: bool,
    limit: Optional[int],
) -> list[R]:
    """
    Order and truncate records. None values sort first.

    Records arrive in insertion order; ties keep that order ascending
    and reverse it descending, so "newest first" stays exact.
    """
    if order_by:
        if descending:
            records = list(reversed(records))
        records = sorted(
            records,
            key=lambda r: (getattr(r, order_by) is not None, getattr(r, order_by) or 0),
            reverse=descending,
        )
    if limit is not None:
        records = records[:limit]
    return records


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class RecordNotFoundError(StorageError):
    """Record not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate record."""
    pass


class ConflictError(StorageError):
    """A compare-and-swap update lost the race."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
