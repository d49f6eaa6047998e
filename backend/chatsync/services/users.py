"""User directory backed by the ``users`` collection."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator

from chatsync.config import Settings, get_settings
from chatsync.core.session import ChatSession
from chatsync.schemas import User
from chatsync.store.base import SERVER_TIMESTAMP, DocumentNotFoundError, DocumentStore, Query

from .mapper import user_from_record, user_to_record

logger = logging.getLogger(__name__)


class UserDirectory:
    def __init__(
        self,
        store: DocumentStore,
        session: ChatSession,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._session = session
        self._settings = settings or get_settings()

    @property
    def collection(self) -> str:
        return self._settings.users_collection

    async def fetch_user(self, user_id: str) -> User:
        snapshot = await self._store.get(self.collection, user_id)
        if snapshot is None:
            raise DocumentNotFoundError(self.collection, user_id)
        return user_from_record(snapshot)

    async def create_user(self, user: User) -> None:
        """Store ``user`` so rooms can show its name and avatar."""

        record = user_to_record(user)
        record["createdAt"] = SERVER_TIMESTAMP
        record["updatedAt"] = SERVER_TIMESTAMP
        await self._store.set(self.collection, user.id, record)
        logger.info("Created user record", extra={"user_id": user.id})

    async def delete_user(self, user_id: str) -> None:
        await self._store.delete(self.collection, user_id)
        logger.info("Deleted user record", extra={"user_id": user_id})

    async def users(self) -> AsyncIterator[list[User]]:
        """Stream every user in the directory except the current one."""

        current_id = self._session.require_user()
        async with aclosing(self._store.watch(Query(self.collection))) as stream:
            async for snapshots in stream:
                yield [
                    user_from_record(snapshot) for snapshot in snapshots if snapshot.id != current_id
                ]
