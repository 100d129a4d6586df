"""
In-Memory Entity Store

Used by tests and single-process deployments that don't need durability.

Transactions are serialized with an asyncio.Lock. On entry the store
takes a shallow snapshot of every collection; records are immutable
values (updates replace them), so restoring the snapshot on error is a
complete rollback.

Calls made outside a transaction take the same lock, so while a
transaction is open nobody else can read its uncommitted writes or
write something its rollback would then erase.
"""

import asyncio
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from farmledger.models.common import FarmRecord, utcnow
from farmledger.services.storage.interface import (
    ConflictError,
    DuplicateError,
    EntityStore,
    Filters,
    R,
    RecordNotFoundError,
    StorageError,
    check_filters,
    matches,
    sort_records,
)


class InMemoryEntityStore(EntityStore):
    """Dict-backed store: {collection: {record_id: record}}."""

    def __init__(self):
        self._tables: dict[str, dict[UUID, FarmRecord]] = {}
        self._lock = asyncio.Lock()
        # Per-task flag: only the task holding the lock may join its transaction
        self._in_transaction: ContextVar[bool] = ContextVar(
            f"in_transaction_{id(self)}", default=False
        )

    def _table(self, model: type[FarmRecord]) -> dict[UUID, FarmRecord]:
        return self._tables.setdefault(model.collection, {})

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        """Hold the lock for a single read, unless our transaction already does."""
        if self._in_transaction.get():
            yield
            return
        async with self._lock:
            yield

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
        check_filters(filters)
        async with self._exclusive():
            records = [
                record
                for record in self._table(model).values()
                if record.farm_id == farm_id
                and (include_deleted or record.deleted_at is None)
                and matches(record, filters)
            ]
        return sort_records(records, order_by, descending, limit)

    async def get(
        self,
        model: type[R],
        farm_id: Optional[UUID],
        record_id: UUID,
    ) -> Optional[R]:
        async with self._exclusive():
            record = self._table(model).get(record_id)
        if record is None or record.farm_id != farm_id or record.deleted_at is not None:
            return None
        return record

    async def insert(self, record: R) -> R:
        async with self.transaction():
            table = self._table(type(record))
            if record.id in table:
                raise DuplicateError(
                    f"{record.collection} record already exists: {record.id}"
                )
            table[record.id] = record
        return record

    async def update_by_id(
        self,
        model: type[R],
        farm_id: Optional[UUID],
        record_id: UUID,
        patch: dict[str, Any],
        *,
        expected: Optional[dict[str, Any]] = None,
    ) -> R:
        async with self.transaction():
            current = await self.get(model, farm_id, record_id)
            if current is None:
                raise RecordNotFoundError(
                    f"{model.collection} record not found: {record_id}"
                )

            if expected and not matches(current, expected):
                raise ConflictError(
                    f"{model.collection} record {record_id} changed since it was read"
                )

            try:
                updated = model.model_validate({**current.model_dump(), **patch})
            except PydanticValidationError as e:
                raise StorageError(f"Invalid update for {model.collection}: {e}") from e

            self._table(model)[record_id] = updated
        return updated

    async def soft_delete(
        self,
        model: type[R],
        farm_id: Optional[UUID],
        record_id: UUID,
    ) -> bool:
        async with self.transaction():
            current = await self.get(model, farm_id, record_id)
            if current is None:
                return False
            self._table(model)[record_id] = current.model_copy(
                update={"deleted_at": utcnow()}
            )
        return True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._in_transaction.get():
            # Nested block joins the outer transaction
            yield
            return

        async with self._lock:
            snapshot = {name: dict(rows) for name, rows in self._tables.items()}
            token = self._in_transaction.set(True)
            try:
                yield
            except BaseException:
                self._tables = snapshot
                raise
            finally:
                self._in_transaction.reset(token)
