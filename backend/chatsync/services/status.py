"""Sending, patching and status transitions of messages and rooms."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from chatsync.config import Settings, get_settings
from chatsync.core.session import ChatSession
from chatsync.models.enums import MessageStatus
from chatsync.schemas import (
    CancelMessage,
    ChoiceMessage,
    FileMessage,
    FulfilmentMessage,
    ImageMessage,
    Message,
    MessageBase,
    PartialCancel,
    PartialChoice,
    PartialFile,
    PartialFulfilment,
    PartialImage,
    PartialMessage,
    PartialQuestion,
    PartialStart,
    PartialText,
    PartialVideo,
    QuestionMessage,
    StartMessage,
    TextMessage,
    User,
    VideoMessage,
    partial_adapter,
)
from chatsync.store.base import SERVER_TIMESTAMP, DocumentStore

from .mapper import message_to_record

logger = logging.getLogger(__name__)

_CONTENT_MESSAGES: dict[type, type[MessageBase]] = {
    PartialText: TextMessage,
    PartialImage: ImageMessage,
    PartialVideo: VideoMessage,
    PartialFile: FileMessage,
    PartialChoice: ChoiceMessage,
    PartialQuestion: QuestionMessage,
}

# Control variants carry a fixed text taken from the settings.
_CONTROL_MESSAGES: dict[type, tuple[type[MessageBase], str]] = {
    PartialStart: (StartMessage, "start_message_text"),
    PartialCancel: (CancelMessage, "cancel_message_text"),
    PartialFulfilment: (FulfilmentMessage, "fulfilment_message_text"),
}

# Fields the store owns; never part of a patch.
_IMMUTABLE_FIELDS = ("id", "createdAt", "author")


def coerce_partial(partial: PartialMessage | Mapping[str, Any]) -> PartialMessage | None:
    """Validate a mapping into a partial payload; ``None`` for unknown variants."""

    if not isinstance(partial, Mapping):
        return partial
    try:
        return partial_adapter.validate_python(dict(partial))
    except ValidationError as exc:
        if any(error["type"] in ("union_tag_invalid", "union_tag_not_found") for error in exc.errors()):
            return None
        raise


def build_message(
    partial: PartialMessage,
    *,
    author: User,
    room_id: str,
    settings: Settings | None = None,
) -> Message | None:
    """Turn a partial payload into its typed message, or ``None`` if unrecognised."""

    settings = settings or get_settings()
    fields = partial.model_dump(exclude={"kind", "visibility"}, exclude_none=True)
    fields.update(id="", author=author, room_id=room_id)
    if partial.visibility is not None:
        fields["visibility"] = list(partial.visibility)

    kind = type(partial)
    if kind in _CONTENT_MESSAGES:
        return _CONTENT_MESSAGES[kind](**fields)
    if kind in _CONTROL_MESSAGES:
        message_cls, text_setting = _CONTROL_MESSAGES[kind]
        return message_cls(text=getattr(settings, text_setting), **fields)
    return None


async def default_visibility(
    store: DocumentStore, room_id: str, author_id: str, *, settings: Settings
) -> list[str]:
    """Participants of the stored room, or just the author if the room is unknown."""

    snapshot = await store.get(settings.rooms_collection, room_id)
    if snapshot is None:
        return [author_id]
    user_ids = snapshot.data.get("userIds") or []
    return [user_id for user_id in user_ids if isinstance(user_id, str)]


def new_message_record(message: MessageBase, room_id: str) -> dict[str, Any]:
    """Stored form of an outgoing message, stamped for insertion."""

    record = message_to_record(message)
    record["createdAt"] = SERVER_TIMESTAMP
    record["updatedAt"] = SERVER_TIMESTAMP
    record["roomId"] = room_id
    record["status"] = MessageStatus.SENT.value
    return record


class MessageOperations:
    def __init__(
        self,
        store: DocumentStore,
        session: ChatSession,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._session = session
        self._settings = settings or get_settings()

    async def default_visibility(self, room_id: str) -> list[str]:
        return await default_visibility(
            self._store, room_id, self._session.require_user(), settings=self._settings
        )

    async def send_message(
        self, partial: PartialMessage | Mapping[str, Any], room_id: str
    ) -> str | None:
        """Store a new message built from ``partial`` and return its id.

        Nothing is written when nobody is signed in or the payload variant is
        not recognised.
        """

        if not self._session.is_authenticated:
            logger.debug("Ignoring send_message without a signed-in user")
            return None
        resolved = coerce_partial(partial)
        message = None
        if resolved is not None:
            message = build_message(
                resolved,
                author=User(id=self._session.require_user()),
                room_id=room_id,
                settings=self._settings,
            )
        if message is None:
            logger.debug("Ignoring unrecognised message payload", extra={"room_id": room_id})
            return None

        record = new_message_record(message, room_id)
        if resolved.visibility is None:
            record["visibility"] = await self.default_visibility(room_id)
        message_id = await self._store.add(self._settings.messages_path(room_id), record)
        logger.debug(
            "Sent message",
            extra={"room_id": room_id, "message_id": message_id, "type": message.type},
        )
        return message_id

    async def update_message(self, message: MessageBase, room_id: str) -> None:
        """Write ``message`` over its stored record.

        A stored status is never moved backwards by the patch.
        """

        if not self._session.is_authenticated:
            logger.debug("Ignoring update_message without a signed-in user")
            return
        collection = self._settings.messages_path(room_id)
        patch = message_to_record(message)
        for key in _IMMUTABLE_FIELDS:
            patch.pop(key, None)
        patch["updatedAt"] = SERVER_TIMESTAMP

        if "status" in patch:
            current = await self._store.get(collection, message.id)
            stored = self._parse_status(current.data.get("status")) if current is not None else None
            if stored is not None:
                patch["status"] = stored.advanced_to(MessageStatus(patch["status"])).value

        await self._store.update(collection, message.id, patch)

    async def set_message_seen(self, message: MessageBase, room_id: str) -> None:
        if not self._session.is_authenticated:
            logger.debug("Ignoring set_message_seen without a signed-in user")
            return
        await self._store.update(
            self._settings.messages_path(room_id),
            message.id,
            {"updatedAt": SERVER_TIMESTAMP, "status": MessageStatus.SEEN.value},
        )

    async def change_room_status(self, room_id: str, status: str) -> None:
        """Overwrite ``metadata.status`` of the room, keeping other metadata keys."""

        await self._store.update(self._settings.rooms_collection, room_id, {"metadata.status": status})

    @staticmethod
    def _parse_status(value: Any) -> MessageStatus | None:
        try:
            return MessageStatus(value)
        except ValueError:
            return None
