"""Single entry point binding the chat operations to a session."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Mapping, Sequence

from chatsync.config import Settings, get_settings
from chatsync.core.session import ChatSession
from chatsync.core.storage import BlobSource, BlobStore, LocalBlobStore
from chatsync.database import create_session_factory, create_store_engine
from chatsync.realtime.relay import ChangeRelay
from chatsync.realtime.transport import BrokerConfig, RedisTransport
from chatsync.schemas import MessageBase, PartialImage, PartialMessage, PartialVideo, Room, User
from chatsync.services import (
    MediaUploadCoordinator,
    MessageOperations,
    MessageProjector,
    RoomResolver,
    UserDirectory,
)
from chatsync.store import DocumentStore, SqlDocumentStore

logger = logging.getLogger(__name__)


class ChatCore:
    """Chat API bound to one store, one blob store and one signed-in user.

    Streams (``rooms``, ``messages`` and friends) are async generators; every
    emission replaces the previous one. Close them with ``aclose()`` or by
    leaving the ``async for`` loop.
    """

    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        session: ChatSession | None = None,
        settings: Settings | None = None,
        *,
        relay: ChangeRelay | None = None,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.session = session or ChatSession.anonymous()
        self.settings = settings or get_settings()
        self.relay = relay

        self.directory = UserDirectory(store, self.session, self.settings)
        self.resolver = RoomResolver(store, self.directory, self.session, self.settings)
        self.projector = MessageProjector(store, self.session, self.settings)
        self.operations = MessageOperations(store, self.session, self.settings)
        self.media = MediaUploadCoordinator(store, blobs, self.session, self.settings)

    @classmethod
    def from_settings(cls, settings: Settings | None = None, session: ChatSession | None = None) -> "ChatCore":
        """Wire the bundled SQL document store and local blob store.

        When ``realtime_redis_url`` is set a change relay is attached; call
        :meth:`start` to begin relaying.
        """

        settings = settings or get_settings()
        factory = create_session_factory(create_store_engine(settings))
        store = SqlDocumentStore(factory)
        relay = None
        if settings.realtime_redis_url:
            transport = RedisTransport(
                BrokerConfig(
                    redis_url=settings.realtime_redis_url,
                    redis_prefix=settings.realtime_redis_prefix,
                    node_id=settings.node_id,
                )
            )
            relay = ChangeRelay(transport, store.feed)
            store.attach_relay(relay)
        return cls(store, LocalBlobStore.from_settings(settings), session, settings, relay=relay)

    def with_session(self, session: ChatSession) -> "ChatCore":
        """Return a facade sharing this one's stores but acting as ``session``."""

        return ChatCore(self.store, self.blobs, session, self.settings, relay=self.relay)

    async def start(self) -> None:
        if self.relay is not None:
            await self.relay.start()
            logger.info("Store change relay started", extra={"node_id": self.relay.node_id})

    async def close(self) -> None:
        if self.relay is not None:
            await self.relay.stop()

    async def __aenter__(self) -> "ChatCore":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # Users
    async def create_user(self, user: User) -> None:
        await self.directory.create_user(user)

    async def delete_user(self, user_id: str) -> None:
        await self.directory.delete_user(user_id)

    async def fetch_user(self, user_id: str) -> User:
        return await self.directory.fetch_user(user_id)

    def users(self) -> AsyncIterator[list[User]]:
        return self.directory.users()

    # Rooms
    async def create_group_room(
        self,
        name: str,
        users: Sequence[User],
        *,
        image_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Room:
        return await self.resolver.create_group_room(name, users, image_url=image_url, metadata=metadata)

    async def create_room(self, other_user: User, *, metadata: dict[str, Any] | None = None) -> Room:
        return await self.resolver.create_room(other_user, metadata=metadata)

    async def create_room_with_custom_id(
        self,
        uuid: str,
        name: str,
        users: Sequence[User],
        *,
        image_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Room:
        return await self.resolver.create_room_with_custom_id(
            uuid, name, users, image_url=image_url, metadata=metadata
        )

    def room(self, room_id: str) -> AsyncIterator[Room | None]:
        return self.resolver.room(room_id)

    def rooms(self, *, order_by_updated_at: bool = False) -> AsyncIterator[list[Room]]:
        return self.resolver.rooms(order_by_updated_at=order_by_updated_at)

    async def change_room_status(self, room_id: str, status: str) -> None:
        await self.operations.change_room_status(room_id, status)

    # Messages
    def messages(self, room: Room) -> AsyncIterator[list[MessageBase]]:
        return self.projector.messages(room)

    def unseen_messages(self, room: Room) -> AsyncIterator[list[MessageBase]]:
        return self.projector.unseen_messages(room)

    def has_unseen_messages(self, room: Room) -> AsyncIterator[bool]:
        return self.projector.has_unseen_messages(room)

    def last_message(self, room: Room) -> AsyncIterator[dict[str, Any] | None]:
        return self.projector.last_message(room)

    async def send_message(self, partial: PartialMessage | Mapping[str, Any], room_id: str) -> str | None:
        return await self.operations.send_message(partial, room_id)

    async def send_media_message(
        self,
        partial: PartialImage | PartialVideo,
        room_id: str,
        file: BlobSource,
        file_name: str,
        *,
        thumb_file: bytes | None = None,
        thumb_file_name: str | None = None,
        custom_path: str | None = None,
        content_type: str | None = None,
    ) -> str | None:
        return await self.media.send_media_message(
            partial,
            room_id,
            file,
            file_name,
            thumb_file=thumb_file,
            thumb_file_name=thumb_file_name,
            custom_path=custom_path,
            content_type=content_type,
        )

    async def update_message(self, message: MessageBase, room_id: str) -> None:
        await self.operations.update_message(message, room_id)

    async def set_message_seen(self, message: MessageBase, room_id: str) -> None:
        await self.operations.set_message_seen(message, room_id)
