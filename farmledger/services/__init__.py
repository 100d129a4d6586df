"""Services package."""

from farmledger.services.storage import (
    ConflictError,
    DuplicateError,
    EntityStore,
    InMemoryEntityStore,
    RecordNotFoundError,
    SQLiteEntityStore,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    "ConflictError",
    "DuplicateError",
    "EntityStore",
    "InMemoryEntityStore",
    "RecordNotFoundError",
    "SQLiteEntityStore",
    "StorageConnectionError",
    "StorageError",
]
