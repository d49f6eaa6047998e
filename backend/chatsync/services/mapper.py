"""Conversion between stored records and typed chat entities."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from chatsync.exceptions import MalformedRecord
from chatsync.models.enums import RoomType
from chatsync.schemas import Message, MessageBase, User, message_adapter
from chatsync.store.base import DocumentSnapshot, Timestamp

# Fields supplied by the store or by the caller; never written back.
_DERIVED_MESSAGE_FIELDS = ("id", "author")
_TIMESTAMP_FIELDS = ("createdAt", "updatedAt")


def to_millis(value: Any, *, field: str = "timestamp") -> int | None:
    """Coerce a store timestamp into epoch milliseconds.

    ``None`` stays ``None``. Accepts :class:`Timestamp`, ``datetime``,
    ISO-8601 strings and numbers already expressed in milliseconds.
    """

    if value is None:
        return None
    if isinstance(value, Timestamp):
        return value.to_millis()
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, bool):
        raise MalformedRecord(f"Unexpected boolean in {field}")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return to_millis(datetime.fromisoformat(value.replace("Z", "+00:00")), field=field)
        except ValueError as exc:
            raise MalformedRecord(f"Unparseable {field}: {value!r}") from exc
    raise MalformedRecord(f"Unexpected {type(value).__name__} in {field}")


def normalize_timestamps(data: Mapping[str, Any]) -> dict[str, Any]:
    normalized = dict(data)
    for key in _TIMESTAMP_FIELDS:
        if key in normalized:
            normalized[key] = to_millis(normalized[key], field=key)
    return normalized


def resolve_author(author_id: str, roster: Iterable[User]) -> User:
    """Find the author in the roster, falling back to an id-only placeholder."""

    for user in roster:
        if user.id == author_id:
            return user
    return User.placeholder(author_id)


def message_from_record(snapshot: DocumentSnapshot, roster: Iterable[User]) -> Message:
    data = dict(snapshot.data)
    author_id = data.pop("authorId", None)
    if not isinstance(author_id, str) or not author_id:
        raise MalformedRecord("Message record has no authorId", record_id=snapshot.id)
    data = normalize_timestamps(data)
    data["id"] = snapshot.id
    data["author"] = resolve_author(author_id, roster)
    try:
        return message_adapter.validate_python(data)
    except ValidationError as exc:
        raise MalformedRecord(f"Invalid message record: {exc}", record_id=snapshot.id) from exc


def message_to_record(message: MessageBase) -> dict[str, Any]:
    record = message.to_wire(exclude=set(_DERIVED_MESSAGE_FIELDS))
    record["authorId"] = message.author.id
    return record


def preview_record(snapshot: DocumentSnapshot) -> dict[str, Any]:
    """Raw fields of a message with timestamps normalised and no author resolution."""

    data = normalize_timestamps(snapshot.data)
    data["id"] = snapshot.id
    return data


def user_from_record(snapshot: DocumentSnapshot) -> User:
    data = normalize_timestamps(snapshot.data)
    if "lastSeen" in data:
        data["lastSeen"] = to_millis(data["lastSeen"], field="lastSeen")
    data["id"] = snapshot.id
    try:
        return User.model_validate(data)
    except ValidationError as exc:
        raise MalformedRecord(f"Invalid user record: {exc}", record_id=snapshot.id) from exc


def user_to_record(user: User) -> dict[str, Any]:
    record = user.to_wire(exclude={"id", "created_at", "updated_at"})
    record.setdefault("metadata", None)
    return record


def room_record(
    *,
    room_type: RoomType,
    users: Iterable[User],
    name: str | None = None,
    image_url: str | None = None,
    metadata: Mapping[str, Any] | None = None,
    with_roles: bool = True,
    created_at: Any = None,
    updated_at: Any = None,
) -> dict[str, Any]:
    """Build the stored form of a room: an id list plus an id to role map."""

    users = list(users)
    return {
        "createdAt": created_at,
        "imageUrl": image_url,
        "metadata": dict(metadata) if metadata is not None else None,
        "name": name,
        "type": room_type.value,
        "updatedAt": updated_at,
        "userIds": [user.id for user in users],
        "userRoles": (
            {user.id: user.role.value if user.role else None for user in users}
            if with_roles
            else None
        ),
    }


def room_user_ids(snapshot: DocumentSnapshot) -> list[str]:
    user_ids = snapshot.data.get("userIds")
    if not isinstance(user_ids, list) or not all(isinstance(item, str) for item in user_ids):
        raise MalformedRecord("Room record has no valid userIds", record_id=snapshot.id)
    return user_ids
