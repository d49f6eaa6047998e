"""Live projection of a room's message change-stream into typed lists."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Iterable

from chatsync.config import Settings, get_settings
from chatsync.core.session import ChatSession
from chatsync.models.enums import MessageStatus
from chatsync.monitoring.metrics import projection_recomputes_total
from chatsync.schemas import Message, Room
from chatsync.store.base import DocumentSnapshot, DocumentStore, Query

from .mapper import message_from_record, preview_record

logger = logging.getLogger(__name__)


def order_newest_first(messages: Iterable[Message]) -> list[Message]:
    """Sort by ``created_at`` descending; equal timestamps keep their input order."""

    return sorted(messages, key=lambda message: message.created_at or 0, reverse=True)


def project_messages(snapshots: Iterable[DocumentSnapshot], room: Room) -> list[Message]:
    """Rebuild the whole message list of ``room`` from one change-stream snapshot."""

    return order_newest_first(message_from_record(snapshot, room.users) for snapshot in snapshots)


class MessageProjector:
    """Exposes restartable live views over a room's messages.

    Every emission is a complete snapshot that replaces the previous one.
    Closing the iterator (``aclose()`` or leaving an ``async for``) ends the
    subscription.
    """

    def __init__(
        self,
        store: DocumentStore,
        session: ChatSession,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._session = session
        self._settings = settings or get_settings()

    def visible_query(self, room: Room) -> Query:
        current_id = self._session.require_user()
        return Query(self._settings.messages_path(room.id)).where(
            "visibility", "array_contains", current_id
        )

    def unseen_query(self, room: Room) -> Query:
        current_id = self._session.require_user()
        return (
            self.visible_query(room)
            .where("status", "==", MessageStatus.DELIVERED.value)
            .where("authorId", "!=", current_id)
        )

    async def messages(self, room: Room) -> AsyncIterator[list[Message]]:
        query = self.visible_query(room).order("createdAt", descending=True)
        async with aclosing(self._project(query, room, stream="messages")) as projected:
            async for messages in projected:
                yield messages

    async def unseen_messages(self, room: Room) -> AsyncIterator[list[Message]]:
        """Messages visible to the current user, delivered, and authored by someone else."""

        async with aclosing(self._project(self.unseen_query(room), room, stream="unseen")) as projected:
            async for messages in projected:
                yield messages

    async def has_unseen_messages(self, room: Room) -> AsyncIterator[bool]:
        async with aclosing(self._store.watch(self.unseen_query(room))) as stream:
            async for snapshots in stream:
                yield bool(snapshots)

    async def last_message(self, room: Room) -> AsyncIterator[dict[str, Any] | None]:
        """Raw fields of the newest visible message, without author resolution."""

        query = self.visible_query(room).order("createdAt", descending=True).limit_to(1)
        async with aclosing(self._store.watch(query)) as stream:
            async for snapshots in stream:
                yield preview_record(snapshots[0]) if snapshots else None

    async def _project(self, query: Query, room: Room, *, stream: str) -> AsyncIterator[list[Message]]:
        async with aclosing(self._store.watch(query)) as snapshots_stream:
            async for snapshots in snapshots_stream:
                projection_recomputes_total.inc(stream=stream)
                messages = project_messages(snapshots, room)
                logger.debug(
                    "Projected message list",
                    extra={"room_id": room.id, "stream": stream, "count": len(messages)},
                )
                yield messages
