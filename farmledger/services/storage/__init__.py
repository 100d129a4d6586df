"""
Storage Services Package

Provides the abstract entity store interface and two implementations:
in-memory (tests, ephemeral use) and SQLite (durable, single host).
"""

from farmledger.services.storage.interface import (
    ConflictError,
    DuplicateError,
    EntityStore,
    RecordNotFoundError,
    StorageConnectionError,
    StorageError,
)
from farmledger.services.storage.memory import InMemoryEntityStore
from farmledger.services.storage.sqlite import SQLiteEntityStore

__all__ = [
    # Interface
    "EntityStore",
    # Exceptions
    "ConflictError",
    "DuplicateError",
    "RecordNotFoundError",
    "StorageConnectionError",
    "StorageError",
    # Implementations
    "InMemoryEntityStore",
    "SQLiteEntityStore",
]
