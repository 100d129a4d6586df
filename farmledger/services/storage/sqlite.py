"""
SQLite Entity Store

DESIGN DECISION: One generic `records` table holds every collection,
with the record body serialized as JSON by its pydantic model:
1. No migrations when a model gains a field
2. Farm scoping and soft-delete are real columns (indexed / filterable)
3. Field filters are applied in Python with the same matcher the
   in-memory store uses, so both backends answer queries identically

TRADEOFFS:
- Not suitable for very large farms (we load a farm's collection per query)
- Writers serialize on BEGIN IMMEDIATE; a locked database is retried
  a few times when opening a transaction, never mid-transaction
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, AsyncIterator, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    Retrying,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from farmledger.config import StorageSettings, get_settings
from farmledger.models.common import FarmRecord, utcnow
from farmledger.services.storage.interface import (
    ConflictError,
    DuplicateError,
    EntityStore,
    Filters,
    R,
    RecordNotFoundError,
    StorageConnectionError,
    StorageError,
    check_filters,
    matches,
    sort_records,
)


SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    collection  TEXT NOT NULL,
    id          TEXT NOT NULL,
    farm_id     TEXT,
    data        TEXT NOT NULL,
    deleted_at  TEXT,
    PRIMARY KEY (collection, id)
);
CREATE INDEX IF NOT EXISTS ix_records_collection_farm
    ON records (collection, farm_id);
"""


def _is_locked(exc: BaseException) -> bool:
    return isinstance(exc, sqlite3.OperationalError) and "locked" in str(exc).lower()


def _key(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


class SQLiteEntityStore(EntityStore):
    """
    SQLite implementation of the entity store.

    Opened lazily on first use. Pass ":memory:" as the path for a
    throwaway database.
    """

    def __init__(self, settings: Optional[StorageSettings] = None):
        self._settings = settings or get_settings().storage
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()
        self._in_transaction: ContextVar[bool] = ContextVar(
            f"sqlite_in_transaction_{id(self)}", default=False
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception(_is_locked),
        reraise=True,
    )
    def connect(self) -> sqlite3.Connection:
        """Open the database and make sure the schema exists."""
        if self._conn is None:
            try:
                conn = sqlite3.connect(
                    self._settings.sqlite_path,
                    timeout=self._settings.busy_timeout_seconds,
                    isolation_level=None,
                    check_same_thread=False,
                )
                conn.executescript(SCHEMA)
            except sqlite3.OperationalError as e:
                if _is_locked(e):
                    raise
                raise StorageConnectionError(
                    f"Failed to open SQLite database {self._settings.sqlite_path}: {e}"
                ) from e
            self._conn = conn
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _begin(self) -> None:
        """BEGIN IMMEDIATE, retried while another writer holds the lock."""
        conn = self.connect()
        for attempt in Retrying(
            stop=stop_after_attempt(self._settings.busy_retry_attempts),
            wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
            retry=retry_if_exception(_is_locked),
            reraise=True,
        ):
            with attempt:
                conn.execute("BEGIN IMMEDIATE")

    @asynccontextmanager
    async def _exclusive(self) -> AsyncIterator[None]:
        """Hold the lock for a single read, unless our transaction already does."""
        if self._in_transaction.get():
            yield
            return
        async with self._lock:
            yield

    def _load(self, model: type[R], data: str) -> R:
        return model.model_validate_json(data)

    def _write(self, record: FarmRecord) -> None:
        self.connect().execute(
            """
            UPDATE records SET data = ?, deleted_at = ?
            WHERE collection = ? AND id = ?
            """,
            (
                record.model_dump_json(),
                record.deleted_at.isoformat() if record.deleted_at else None,
                record.collection,
                str(record.id),
            ),
        )

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
        sql = "SELECT data FROM records WHERE collection = ? AND farm_id IS ?"
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        sql += " ORDER BY rowid"

        try:
            async with self._exclusive():
                rows = self.connect().execute(
                    sql, (model.collection, _key(farm_id))
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to query {model.collection}: {e}") from e

        records = [self._load(model, row[0]) for row in rows]
        records = [record for record in records if matches(record, filters)]
        return sort_records(records, order_by, descending, limit)

    async def get(
        self,
        model: type[R],
        farm_id: Optional[UUID],
        record_id: UUID,
    ) -> Optional[R]:
        try:
            async with self._exclusive():
                row = self.connect().execute(
                    """
                    SELECT data FROM records
                    WHERE collection = ? AND id = ? AND farm_id IS ? AND deleted_at IS NULL
                    """,
                    (model.collection, str(record_id), _key(farm_id)),
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to get {model.collection}: {e}") from e

        return self._load(model, row[0]) if row else None

    async def insert(self, record: R) -> R:
        # Never autocommit on the shared connection while another caller's
        # transaction is open there
        async with self.transaction():
            try:
                self.connect().execute(
                    """
                    INSERT INTO records (collection, id, farm_id, data, deleted_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        record.collection,
                        str(record.id),
                        _key(record.farm_id),
                        record.model_dump_json(),
                        record.deleted_at.isoformat() if record.deleted_at else None,
                    ),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateError(
                    f"{record.collection} record already exists: {record.id}"
                ) from e
            except sqlite3.Error as e:
                raise StorageError(f"Failed to insert {record.collection}: {e}") from e
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
        # The read and the write must see the same row
        async with self.transaction():
            current = await self.get(model, farm_id, record_id)
            if current is None:
                raise RecordNotFoundError(f"{model.collection} record not found: {record_id}")

            if expected and not matches(current, expected):
                raise ConflictError(
                    f"{model.collection} record {record_id} changed since it was read"
                )

            try:
                updated = model.model_validate({**current.model_dump(), **patch})
            except PydanticValidationError as e:
                raise StorageError(f"Invalid update for {model.collection}: {e}") from e

            try:
                self._write(updated)
            except sqlite3.Error as e:
                raise StorageError(f"Failed to update {model.collection}: {e}") from e
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
            try:
                self._write(current.model_copy(update={"deleted_at": utcnow()}))
            except sqlite3.Error as e:
                raise StorageError(f"Failed to delete {model.collection}: {e}") from e
            return True

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._in_transaction.get():
            yield
            return

        async with self._lock:
            self._begin()
            token = self._in_transaction.set(True)
            try:
                yield
            except BaseException:
                self.connect().execute("ROLLBACK")
                raise
            else:
                self.connect().execute("COMMIT")
            finally:
                self._in_transaction.reset(token)
