"""Document store protocol consumed by the chat core."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Iterable, Iterator, Mapping, Protocol, Sequence


class StoreError(Exception):
    """Base class for document store failures."""


class DocumentNotFoundError(StoreError):
    """Raised when a document that must exist is missing."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document not found: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


class DocumentExistsError(StoreError):
    """Raised when creating a document under a key that is already taken."""

    def __init__(self, collection: str, doc_id: str) -> None:
        super().__init__(f"Document already exists: {collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


@dataclass(slots=True, frozen=True, order=True)
class Timestamp:
    """Store-native point in time with nanosecond precision."""

    seconds: int
    nanoseconds: int = 0

    @classmethod
    def now(cls) -> "Timestamp":
        return cls.from_nanos(time.time_ns())

    @classmethod
    def from_nanos(cls, value: int) -> "Timestamp":
        seconds, nanoseconds = divmod(value, 1_000_000_000)
        return cls(seconds=seconds, nanoseconds=nanoseconds)

    @classmethod
    def from_datetime(cls, value: datetime) -> "Timestamp":
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        seconds = int(value.timestamp())
        return cls(seconds=seconds, nanoseconds=value.microsecond * 1000)

    def to_millis(self) -> int:
        return self.seconds * 1000 + self.nanoseconds // 1_000_000

    def to_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.seconds + self.nanoseconds / 1e9, tz=timezone.utc)


class _ServerTimestamp:
    """Placeholder replaced by the store's clock when a write is applied."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

_MISSING = object()


def get_path(data: Mapping[str, Any], path: str) -> Any:
    """Return the value at a dotted ``path`` or a missing marker."""

    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def resolve_server_timestamps(data: Mapping[str, Any], now: Timestamp) -> dict[str, Any]:
    resolved: dict[str, Any] = {}
    for key, value in data.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = now
        elif isinstance(value, Mapping):
            resolved[key] = resolve_server_timestamps(value, now)
        else:
            resolved[key] = value
    return resolved


def apply_update(current: Mapping[str, Any], changes: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``changes`` into ``current``; dotted keys address nested maps."""

    merged = dict(current)
    for key, value in changes.items():
        parts = key.split(".")
        target = merged
        for part in parts[:-1]:
            child = target.get(part)
            child = dict(child) if isinstance(child, Mapping) else {}
            target[part] = child
            target = child
        target[parts[-1]] = value
    return merged


def _comparable(value: Any) -> Any:
    if isinstance(value, Timestamp):
        return value.to_millis()
    if isinstance(value, datetime):
        return Timestamp.from_datetime(value).to_millis()
    return value


@dataclass(slots=True, frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    OPERATORS = ("==", "!=", "array_contains", "in")

    def __post_init__(self) -> None:
        if self.op not in self.OPERATORS:
            raise ValueError(f"Unsupported filter operator '{self.op}'")

    def matches(self, data: Mapping[str, Any]) -> bool:
        actual = get_path(data, self.field)
        if self.op == "==":
            return actual is not _MISSING and actual == self.value
        if self.op == "!=":
            return actual is not _MISSING and actual is not None and actual != self.value
        if self.op == "array_contains":
            return isinstance(actual, (list, tuple)) and self.value in actual
        return actual is not _MISSING and actual in self.value


@dataclass(slots=True, frozen=True)
class DocumentSnapshot:
    id: str
    collection: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Query:
    """Immutable description of a collection query."""

    collection: str
    filters: tuple[FieldFilter, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None

    def where(self, field_path: str, op: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + (FieldFilter(field_path, op, value),))

    def order(self, field_path: str, *, descending: bool = False) -> "Query":
        return replace(self, order_by=field_path, descending=descending)

    def limit_to(self, count: int) -> "Query":
        return replace(self, limit=count)

    def apply(self, documents: Iterable[DocumentSnapshot]) -> list[DocumentSnapshot]:
        """Filter, order and truncate documents given in native store order."""

        results = [doc for doc in documents if all(f.matches(doc.data) for f in self.filters)]
        if self.order_by is not None:
            key = self.order_by
            results = [doc for doc in results if get_path(doc.data, key) not in (_MISSING, None)]
            # sorted() is stable for reverse=True as well, so ties keep native order.
            results = sorted(
                results,
                key=lambda doc: _comparable(get_path(doc.data, key)),
                reverse=self.descending,
            )
        if self.limit is not None:
            results = results[: self.limit]
        return results


class ChangeFeed:
    """Fans out "collection changed" notifications to local watchers."""

    def __init__(self) -> None:
        self._listeners: dict[str, set[asyncio.Queue[None]]] = defaultdict(set)

    @contextlib.contextmanager
    def listen(self, collection: str) -> Iterator[asyncio.Queue[None]]:
        queue: asyncio.Queue[None] = asyncio.Queue()
        self._listeners[collection].add(queue)
        try:
            yield queue
        finally:
            listeners = self._listeners.get(collection)
            if listeners is not None:
                listeners.discard(queue)
                if not listeners:
                    self._listeners.pop(collection, None)

    def notify(self, collection: str) -> int:
        listeners = self._listeners.get(collection, ())
        for queue in listeners:
            queue.put_nowait(None)
        return len(listeners)

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, ()))


class DocumentStore(Protocol):
    """CRUD and subscribe operations the chat core relies on."""

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        """Insert a document under a generated key and return the key."""

    async def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Insert a document under ``doc_id``; fail if the key is taken."""

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Insert or overwrite the document under ``doc_id``."""

    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        """Return the document or ``None`` if it does not exist."""

    async def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
        """Merge ``changes`` into an existing document."""

    async def delete(self, collection: str, doc_id: str) -> None:
        """Remove a document, ignoring missing keys."""

    async def query(self, query: Query) -> list[DocumentSnapshot]:
        """Run ``query`` once."""

    def watch(self, query: Query) -> AsyncIterator[list[DocumentSnapshot]]:
        """Yield the full result of ``query`` now and after every change."""

    def watch_document(self, collection: str, doc_id: str) -> AsyncIterator[DocumentSnapshot | None]:
        """Yield the document now and after every change."""


def snapshot_signature(documents: Sequence[DocumentSnapshot]) -> list[tuple[str, dict[str, Any]]]:
    return [(doc.id, doc.data) for doc in documents]
