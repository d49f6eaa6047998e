"""Document store protocol and the bundled SQL implementation."""

from .base import (
    SERVER_TIMESTAMP,
    ChangeFeed,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    Query,
    StoreError,
    Timestamp,
)
from .sql import SqlDocumentStore

__all__ = [
    "SERVER_TIMESTAMP",
    "ChangeFeed",
    "DocumentExistsError",
    "DocumentNotFoundError",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "Query",
    "SqlDocumentStore",
    "StoreError",
    "Timestamp",
]
