"""Document store implemented on top of a relational database."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, AsyncIterator, Mapping

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from chatsync.database import session_scope
from chatsync.models import Document
from chatsync.monitoring.metrics import active_watches, store_change_events_total
from chatsync.realtime.transport import TransportUnavailableError

from .base import (
    ChangeFeed,
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentSnapshot,
    Query,
    Timestamp,
    apply_update,
    resolve_server_timestamps,
    snapshot_signature,
)

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from chatsync.realtime.relay import ChangeRelay


logger = logging.getLogger(__name__)

_TIMESTAMP_KEY = "__timestamp__"


def encode_value(value: Any) -> Any:
    """Convert a document value into its JSON column representation."""

    if isinstance(value, datetime):
        value = Timestamp.from_datetime(value)
    if isinstance(value, Timestamp):
        return {_TIMESTAMP_KEY: [value.seconds, value.nanoseconds]}
    if isinstance(value, Mapping):
        return {str(key): encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {_TIMESTAMP_KEY}:
            seconds, nanoseconds = value[_TIMESTAMP_KEY]
            return Timestamp(seconds=seconds, nanoseconds=nanoseconds)
        return {key: decode_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    return value


class SqlDocumentStore:
    """SQLAlchemy-backed :class:`~chatsync.store.base.DocumentStore`.

    Sessions are synchronous and run on the event loop thread, so each write
    and each watch recompute blocks the loop while it talks to the database.
    The bundled engine targets local and SQLite deployments; busy services
    should plug in a store backed by an asynchronous driver.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        feed: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed or ChangeFeed()
        self._relay: ChangeRelay | None = None

    @property
    def feed(self) -> ChangeFeed:
        return self._feed

    def attach_relay(self, relay: ChangeRelay | None) -> None:
        self._relay = relay

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        await self.create(collection, doc_id, data)
        return doc_id

    async def create(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        payload = self._prepare(data)
        try:
            with session_scope(self._session_factory) as session:
                session.add(Document(collection=collection, doc_id=doc_id, data=payload))
        except IntegrityError as exc:
            raise DocumentExistsError(collection, doc_id) from exc
        await self._announce(collection)

    async def set(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        payload = self._prepare(data)
        with session_scope(self._session_factory) as session:
            document = self._load(session, collection, doc_id)
            if document is None:
                session.add(Document(collection=collection, doc_id=doc_id, data=payload))
            else:
                document.data = payload
        await self._announce(collection)

    async def update(self, collection: str, doc_id: str, changes: Mapping[str, Any]) -> None:
        resolved = resolve_server_timestamps(changes, Timestamp.now())
        with session_scope(self._session_factory) as session:
            document = self._load(session, collection, doc_id)
            if document is None:
                raise DocumentNotFoundError(collection, doc_id)
            current = decode_value(document.data)
            document.data = encode_value(apply_update(current, resolved))
        await self._announce(collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        with session_scope(self._session_factory) as session:
            document = self._load(session, collection, doc_id)
            if document is None:
                return
            session.delete(document)
        await self._announce(collection)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get(self, collection: str, doc_id: str) -> DocumentSnapshot | None:
        with session_scope(self._session_factory) as session:
            document = self._load(session, collection, doc_id)
            if document is None:
                return None
            return self._snapshot(document)

    async def query(self, query: Query) -> list[DocumentSnapshot]:
        stmt = (
            select(Document)
            .where(Document.collection == query.collection)
            .order_by(Document.seq)
        )
        with session_scope(self._session_factory) as session:
            documents = [self._snapshot(row) for row in session.execute(stmt).scalars()]
        return query.apply(documents)

    async def watch(self, query: Query) -> AsyncIterator[list[DocumentSnapshot]]:
        active_watches.inc(kind="query")
        try:
            with self._feed.listen(query.collection) as queue:
                last: list[tuple[str, dict[str, Any]]] | None = None
                while True:
                    documents = await self.query(query)
                    signature = snapshot_signature(documents)
                    if signature != last:
                        last = signature
                        yield documents
                    await self._wait_for_change(queue)
        finally:
            active_watches.dec(kind="query")

    async def watch_document(
        self, collection: str, doc_id: str
    ) -> AsyncIterator[DocumentSnapshot | None]:
        active_watches.inc(kind="document")
        try:
            with self._feed.listen(collection) as queue:
                first = True
                last: DocumentSnapshot | None = None
                while True:
                    snapshot = await self.get(collection, doc_id)
                    if first or snapshot != last:
                        first = False
                        last = snapshot
                        yield snapshot
                    await self._wait_for_change(queue)
        finally:
            active_watches.dec(kind="document")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    async def _wait_for_change(queue) -> None:
        await queue.get()
        # Coalesce a burst of writes into a single recomputation.
        while not queue.empty():
            queue.get_nowait()

    @staticmethod
    def _prepare(data: Mapping[str, Any]) -> dict[str, Any]:
        return encode_value(resolve_server_timestamps(data, Timestamp.now()))

    @staticmethod
    def _load(session: Session, collection: str, doc_id: str) -> Document | None:
        stmt = select(Document).where(
            Document.collection == collection, Document.doc_id == doc_id
        )
        return session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _snapshot(document: Document) -> DocumentSnapshot:
        return DocumentSnapshot(
            id=document.doc_id,
            collection=document.collection,
            data=decode_value(document.data),
        )

    async def _announce(self, collection: str) -> None:
        delivered = self._feed.notify(collection)
        store_change_events_total.inc(origin="local")
        logger.debug(
            "Collection changed", extra={"collection": collection, "watchers": delivered}
        )
        if self._relay is None:
            return
        try:
            await self._relay.publish(collection)
        except TransportUnavailableError:
            logger.warning(
                "Failed to relay store change",
                exc_info=logger.isEnabledFor(logging.DEBUG),
                extra={"collection": collection},
            )
