"""Room creation, direct-room deduplication and roster hydration."""

from __future__ import annotations

import hashlib
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Sequence

from pydantic import ValidationError

from chatsync.config import Settings, get_settings
from chatsync.core.session import ChatSession
from chatsync.exceptions import MalformedRecord
from chatsync.models.enums import Role, RoomType
from chatsync.schemas import GroupRoomCreate, Room, User
from chatsync.store.base import (
    SERVER_TIMESTAMP,
    DocumentExistsError,
    DocumentSnapshot,
    DocumentStore,
    Query,
)

from .mapper import normalize_timestamps, room_record, room_user_ids
from .users import UserDirectory

logger = logging.getLogger(__name__)


def direct_room_key(user_id: str, other_id: str) -> str:
    """Deterministic document key for the direct room of an unordered pair."""

    first, second = sorted((user_id, other_id))
    digest = hashlib.sha256(f"{first}\x1f{second}".encode("utf-8")).hexdigest()
    return f"direct_{digest[:40]}"


class RoomResolver:
    def __init__(
        self,
        store: DocumentStore,
        directory: UserDirectory,
        session: ChatSession,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._directory = directory
        self._session = session
        self._settings = settings or get_settings()

    @property
    def collection(self) -> str:
        return self._settings.rooms_collection

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    async def create_group_room(
        self,
        name: str,
        users: Sequence[User],
        *,
        image_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Room:
        """Create a group room; the creator is prepended to ``users``."""

        current_id = self._session.require_user()
        payload = GroupRoomCreate(name=name, users=list(users), image_url=image_url, metadata=metadata)
        roster = [await self._directory.fetch_user(current_id), *payload.users]

        room_id = await self._store.add(self.collection, self._group_record(payload, roster))
        logger.info(
            "Created group room", extra={"room_id": room_id, "participants": len(roster)}
        )
        return Room(
            id=room_id,
            type=RoomType.GROUP,
            name=payload.name,
            image_url=payload.image_url,
            metadata=payload.metadata,
            users=roster,
        )

    async def create_room(self, other_user: User, *, metadata: dict[str, Any] | None = None) -> Room:
        """Return the direct room shared with ``other_user``, creating it if needed.

        Without ``deterministic_direct_rooms`` the lookup and the insert are two
        separate store calls, so concurrent callers may each create a room.
        """

        current_id = self._session.require_user()
        if self._settings.deterministic_direct_rooms:
            return await self._create_keyed_direct_room(current_id, other_user, metadata)

        existing = await self._find_direct_room(current_id, other_user.id)
        if existing is not None:
            return await self.hydrate_room(existing)

        roster = [await self._directory.fetch_user(current_id), other_user]
        room_id = await self._store.add(self.collection, self._direct_record(roster, metadata))
        logger.info("Created direct room", extra={"room_id": room_id})
        return Room(id=room_id, type=RoomType.DIRECT, metadata=metadata, users=roster)

    async def create_room_with_custom_id(
        self,
        uuid: str,
        name: str,
        users: Sequence[User],
        *,
        image_url: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Room:
        """Create a group room under a caller-chosen key.

        The returned roster also lists the automated assistant. The assistant is
        not part of the stored ``userIds``, so the persisted room and the
        returned one differ; callers must not use the returned roster for
        authorization decisions.
        """

        current_id = self._session.require_user()
        payload = GroupRoomCreate(name=name, users=list(users), image_url=image_url, metadata=metadata)
        current = await self._directory.fetch_user(current_id)
        roster = [current, *payload.users]

        record = self._group_record(payload, roster)
        record["clientId"] = current.id
        await self._store.set(self.collection, uuid, record)
        logger.info("Created group room with custom id", extra={"room_id": uuid})

        assistant = User(id=self._settings.assistant_user_id, first_name=self._settings.assistant_first_name)
        return Room(
            id=uuid,
            type=RoomType.GROUP,
            name=payload.name,
            image_url=payload.image_url,
            metadata=payload.metadata,
            users=[*roster, assistant],
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def hydrate_room(self, snapshot: DocumentSnapshot) -> Room:
        """Resolve a stored room's user ids into full users with room roles."""

        data = normalize_timestamps(snapshot.data)
        roles = data.get("userRoles") or {}
        if not isinstance(roles, dict):
            raise MalformedRecord("Room record has invalid userRoles", record_id=snapshot.id)

        users: list[User] = []
        for user_id in room_user_ids(snapshot):
            user = await self._directory.fetch_user(user_id)
            users.append(user.model_copy(update={"role": self._role(roles.get(user_id), snapshot.id)}))

        try:
            return Room(
                id=snapshot.id,
                type=data.get("type"),
                name=data.get("name"),
                image_url=data.get("imageUrl"),
                metadata=data.get("metadata"),
                users=users,
                created_at=data.get("createdAt"),
                updated_at=data.get("updatedAt"),
            )
        except ValidationError as exc:
            raise MalformedRecord(f"Invalid room record: {exc}", record_id=snapshot.id) from exc

    async def room(self, room_id: str) -> AsyncIterator[Room | None]:
        """Stream one room; ``None`` is emitted while the room does not exist."""

        self._session.require_user()
        async with aclosing(self._store.watch_document(self.collection, room_id)) as stream:
            async for snapshot in stream:
                yield None if snapshot is None else await self.hydrate_room(snapshot)

    async def rooms(self, *, order_by_updated_at: bool = False) -> AsyncIterator[list[Room]]:
        """Stream the rooms the current user participates in.

        With ``order_by_updated_at`` the most recently updated rooms come first;
        rooms without ``updatedAt`` are then left out.
        """

        current_id = self._session.require_user()
        query = Query(self.collection).where("userIds", "array_contains", current_id)
        if order_by_updated_at:
            query = query.order("updatedAt", descending=True)
        async with aclosing(self._store.watch(query)) as stream:
            async for snapshots in stream:
                yield [await self.hydrate_room(snapshot) for snapshot in snapshots]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _find_direct_room(self, current_id: str, other_id: str) -> DocumentSnapshot | None:
        query = Query(self.collection).where("userIds", "array_contains", current_id)
        wanted = {current_id, other_id}
        for snapshot in await self._store.query(query):
            if snapshot.data.get("type") != RoomType.DIRECT.value:
                continue
            user_ids = room_user_ids(snapshot)
            if len(user_ids) == 2 and set(user_ids) == wanted:
                return snapshot
        return None

    async def _create_keyed_direct_room(
        self, current_id: str, other_user: User, metadata: dict[str, Any] | None
    ) -> Room:
        room_id = direct_room_key(current_id, other_user.id)
        existing = await self._store.get(self.collection, room_id)
        if existing is not None:
            return await self.hydrate_room(existing)

        roster = [await self._directory.fetch_user(current_id), other_user]
        try:
            await self._store.create(self.collection, room_id, self._direct_record(roster, metadata))
        except DocumentExistsError:
            logger.info("Direct room created concurrently; reusing it", extra={"room_id": room_id})
            existing = await self._store.get(self.collection, room_id)
            if existing is None:
                raise
            return await self.hydrate_room(existing)
        logger.info("Created direct room", extra={"room_id": room_id})
        return Room(id=room_id, type=RoomType.DIRECT, metadata=metadata, users=roster)

    @staticmethod
    def _group_record(payload: GroupRoomCreate, roster: list[User]) -> dict[str, Any]:
        return room_record(
            room_type=RoomType.GROUP,
            users=roster,
            name=payload.name,
            image_url=payload.image_url,
            metadata=payload.metadata,
            created_at=SERVER_TIMESTAMP,
            updated_at=SERVER_TIMESTAMP,
        )

    @staticmethod
    def _direct_record(roster: list[User], metadata: dict[str, Any] | None) -> dict[str, Any]:
        return room_record(
            room_type=RoomType.DIRECT,
            users=roster,
            metadata=metadata,
            with_roles=False,
            created_at=SERVER_TIMESTAMP,
            updated_at=SERVER_TIMESTAMP,
        )

    @staticmethod
    def _role(value: Any, room_id: str) -> Role | None:
        if value is None:
            return None
        try:
            return Role(value)
        except ValueError as exc:
            raise MalformedRecord(f"Unknown role {value!r}", record_id=room_id) from exc
