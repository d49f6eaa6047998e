"""Unit tests for record <-> entity mapping."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from chatsync.exceptions import MalformedRecord
from chatsync.models import MessageStatus, Role, RoomType
from chatsync.schemas import ImageMessage, TextMessage, User
from chatsync.services.mapper import (
    message_from_record,
    message_to_record,
    preview_record,
    room_record,
    room_user_ids,
    to_millis,
    user_from_record,
    user_to_record,
)
from chatsync.store import DocumentSnapshot, Timestamp


def _snapshot(doc_id: str, data: dict) -> DocumentSnapshot:
    return DocumentSnapshot(id=doc_id, collection="rooms/r1/messages", data=data)


def test_to_millis_accepts_store_and_wire_representations():
    moment = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    expected = int(moment.timestamp() * 1000)
    assert to_millis(None) is None
    assert to_millis(Timestamp.from_datetime(moment)) == expected
    assert to_millis(moment) == expected
    assert to_millis("2024-03-01T12:00:00Z") == expected
    assert to_millis(expected) == expected


@pytest.mark.parametrize("value", [True, "yesterday", object()])
def test_to_millis_rejects_unknown_values(value):
    with pytest.raises(MalformedRecord):
        to_millis(value, field="createdAt")


def test_message_from_record_resolves_author_from_roster(alice, bob):
    snapshot = _snapshot(
        "m1",
        {
            "authorId": "bob",
            "type": "text",
            "text": "hello",
            "status": "delivered",
            "visibility": ["alice", "bob"],
            "createdAt": Timestamp(seconds=100),
            "roomId": "r1",
        },
    )
    message = message_from_record(snapshot, [alice, bob])
    assert isinstance(message, TextMessage)
    assert message.id == "m1"
    assert message.author == bob
    assert message.status is MessageStatus.DELIVERED
    assert message.created_at == 100_000
    assert message.room_id == "r1"


def test_message_from_record_falls_back_to_placeholder_author(alice):
    snapshot = _snapshot("m2", {"authorId": "ghost", "type": "text", "text": "boo"})
    message = message_from_record(snapshot, [alice])
    assert message.author == User(id="ghost")
    assert message.author.first_name is None


def test_message_from_record_requires_author_id():
    with pytest.raises(MalformedRecord) as excinfo:
        message_from_record(_snapshot("m3", {"type": "text", "text": "x"}), [])
    assert excinfo.value.record_id == "m3"


def test_message_from_record_rejects_unknown_type():
    with pytest.raises(MalformedRecord):
        message_from_record(_snapshot("m4", {"authorId": "a", "type": "sticker"}), [])


def test_message_to_record_uses_author_id(alice):
    message = ImageMessage(
        id="m5",
        author=alice,
        name="cat.png",
        size=10,
        uri="https://img/cat.png",
        visibility=["alice"],
    )
    record = message_to_record(message)
    assert record["authorId"] == "alice"
    assert "author" not in record
    assert "id" not in record
    assert record["type"] == "image"
    assert record["uri"] == "https://img/cat.png"
    assert "height" not in record


def test_preview_record_keeps_raw_fields():
    preview = preview_record(
        _snapshot("m6", {"authorId": "bob", "text": "hey", "createdAt": Timestamp(seconds=2)})
    )
    assert preview == {"authorId": "bob", "text": "hey", "createdAt": 2000, "id": "m6"}


def test_user_record_round_trip(alice):
    record = user_to_record(alice)
    assert record["firstName"] == "Alice"
    assert record["role"] == "admin"
    assert "id" not in record

    record["lastSeen"] = Timestamp(seconds=5)
    user = user_from_record(DocumentSnapshot(id="alice", collection="users", data=record))
    assert user.id == "alice"
    assert user.role is Role.ADMIN
    assert user.last_seen == 5000


def test_room_record_stores_ids_and_roles(alice, carol):
    record = room_record(room_type=RoomType.GROUP, users=[alice, carol], name="Team")
    assert record["userIds"] == ["alice", "carol"]
    assert record["userRoles"] == {"alice": "admin", "carol": None}
    assert record["type"] == "group"

    direct = room_record(room_type=RoomType.DIRECT, users=[alice, carol], with_roles=False)
    assert direct["userRoles"] is None
    assert direct["name"] is None


def test_room_user_ids_validates_shape():
    with pytest.raises(MalformedRecord):
        room_user_ids(DocumentSnapshot(id="r", collection="rooms", data={"userIds": "alice"}))
