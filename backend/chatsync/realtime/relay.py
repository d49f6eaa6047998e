"""Relays document store change announcements between processes."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from chatsync.monitoring.metrics import store_change_events_total

from .transport import STORE_CHANGES_TOPIC, RedisTransport, Subscription

if TYPE_CHECKING:  # pragma: no cover - typing helpers only
    from chatsync.store.base import ChangeFeed


logger = logging.getLogger(__name__)


class ChangeRelay:
    """Publishes local collection changes and replays remote ones locally.

    Only the collection path travels over the wire; watchers re-run their
    query against the shared database when woken.
    """

    def __init__(self, transport: RedisTransport, feed: ChangeFeed, *, node_id: str | None = None) -> None:
        self._transport = transport
        self._feed = feed
        self._node_id = node_id or transport.node_id or uuid.uuid4().hex
        self._subscription: Subscription | None = None

    @property
    def node_id(self) -> str:
        return self._node_id

    async def start(self) -> None:
        if self._subscription is None:
            self._subscription = await self._transport.subscribe(STORE_CHANGES_TOPIC, self._handle)

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

    async def publish(self, collection: str) -> None:
        await self._transport.publish(
            STORE_CHANGES_TOPIC, {"collection": collection, "origin": self._node_id}
        )

    async def _handle(self, payload: dict[str, Any]) -> None:
        if payload.get("origin") == self._node_id:
            return
        collection = payload.get("collection")
        if not isinstance(collection, str):
            logger.warning("Discarded store change without collection", extra={"payload": payload})
            return
        self._feed.notify(collection)
        store_change_events_total.inc(origin="remote")
