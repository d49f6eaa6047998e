"""Tests for the live message projections."""

from __future__ import annotations

import asyncio

import pytest

from chatsync.core.session import ChatSession
from chatsync.exceptions import MalformedRecord, Unauthenticated
from chatsync.monitoring.metrics import projection_recomputes_total
from chatsync.schemas import PartialText, TextMessage
from chatsync.store import Timestamp

MESSAGES = "rooms/{room}/messages"


async def _put(store, room_id: str, doc_id: str, **fields) -> None:
    record = {
        "type": "text",
        "text": doc_id,
        "status": "sent",
        "visibility": ["alice", "bob"],
        "roomId": room_id,
    }
    record.update(fields)
    await store.set(MESSAGES.format(room=room_id), doc_id, record)


@pytest.fixture()
def bob_core(core):
    return core.with_session(ChatSession(user_id="bob"))


@pytest.mark.anyio("asyncio")
async def test_messages_are_newest_first_with_resolved_authors(core, store, seed_users, bob):
    await seed_users()
    room = await core.create_room(bob)
    await _put(store, room.id, "old", authorId="alice", createdAt=Timestamp(seconds=10))
    await _put(store, room.id, "new", authorId="bob", createdAt=Timestamp(seconds=30))
    await _put(store, room.id, "mid", authorId="ghost", createdAt=Timestamp(seconds=20))

    stream = core.messages(room)
    try:
        messages = await anext(stream)
    finally:
        await stream.aclose()

    assert [message.id for message in messages] == ["new", "mid", "old"]
    assert all(isinstance(message, TextMessage) for message in messages)
    assert messages[0].author.first_name == "Bob"
    assert messages[1].author.id == "ghost"
    assert messages[1].author.first_name is None
    assert messages[2].created_at == 10_000


@pytest.mark.anyio("asyncio")
async def test_messages_only_include_visible_records(core, store, seed_users, bob):
    await seed_users()
    room = await core.create_room(bob)
    await _put(store, room.id, "shared", authorId="bob", createdAt=Timestamp(seconds=1))
    await _put(
        store, room.id, "private", authorId="bob", visibility=["bob"], createdAt=Timestamp(seconds=2)
    )

    stream = core.messages(room)
    try:
        messages = await anext(stream)
    finally:
        await stream.aclose()

    assert [message.id for message in messages] == ["shared"]


@pytest.mark.anyio("asyncio")
async def test_messages_stream_recomputes_after_send(core, seed_users, bob, bob_core):
    await seed_users()
    room = await core.create_room(bob)
    before = projection_recomputes_total.value(stream="messages")

    stream = bob_core.messages(room)
    try:
        assert await anext(stream) == []
        message_id = await core.send_message(PartialText(text="hello bob"), room.id)
        messages = await asyncio.wait_for(anext(stream), timeout=1.0)
    finally:
        await stream.aclose()

    assert [message.id for message in messages] == [message_id]
    assert messages[0].text == "hello bob"
    assert messages[0].author.first_name == "Alice"
    assert projection_recomputes_total.value(stream="messages") == before + 2


@pytest.mark.anyio("asyncio")
async def test_unseen_messages_are_delivered_foreign_and_visible(core, store, seed_users, bob):
    await seed_users()
    room = await core.create_room(bob)
    await _put(store, room.id, "wanted", authorId="bob", status="delivered")
    await _put(store, room.id, "own", authorId="alice", status="delivered")
    await _put(store, room.id, "read", authorId="bob", status="seen")
    await _put(store, room.id, "hidden", authorId="bob", status="delivered", visibility=["bob"])

    unseen = core.unseen_messages(room)
    flag = core.has_unseen_messages(room)
    try:
        assert [message.id for message in await anext(unseen)] == ["wanted"]
        assert await anext(flag) is True

        await store.update(MESSAGES.format(room=room.id), "wanted", {"status": "seen"})
        assert await asyncio.wait_for(anext(unseen), timeout=1.0) == []
        assert await asyncio.wait_for(anext(flag), timeout=1.0) is False
    finally:
        await unseen.aclose()
        await flag.aclose()


@pytest.mark.anyio("asyncio")
async def test_unseen_messages_are_subset_of_messages(core, store, seed_users, bob):
    await seed_users()
    room = await core.create_room(bob)
    for index, status in enumerate(["sent", "delivered", "seen", "delivered"]):
        await _put(
            store,
            room.id,
            f"m{index}",
            authorId="bob" if index % 2 else "alice",
            status=status,
            createdAt=Timestamp(seconds=index),
        )

    messages = core.messages(room)
    unseen = core.unseen_messages(room)
    try:
        all_ids = {message.id for message in await anext(messages)}
        unseen_ids = {message.id for message in await anext(unseen)}
    finally:
        await messages.aclose()
        await unseen.aclose()

    assert unseen_ids == {"m1", "m3"}
    assert unseen_ids <= all_ids


@pytest.mark.anyio("asyncio")
async def test_last_message_is_raw_preview(core, store, seed_users, bob):
    await seed_users()
    room = await core.create_room(bob)

    stream = core.last_message(room)
    try:
        assert await anext(stream) is None
        await _put(store, room.id, "first", authorId="bob", createdAt=Timestamp(seconds=5))
        await _put(store, room.id, "second", authorId="ghost", createdAt=Timestamp(seconds=9))
        preview = await asyncio.wait_for(anext(stream), timeout=1.0)
    finally:
        await stream.aclose()

    assert preview["id"] == "second"
    assert preview["authorId"] == "ghost"
    assert preview["createdAt"] == 9_000
    assert "author" not in preview


@pytest.mark.anyio("asyncio")
async def test_projection_requires_signed_in_user(core, seed_users, bob):
    await seed_users()
    room = await core.create_room(bob)

    stream = core.with_session(ChatSession.anonymous()).messages(room)
    with pytest.raises(Unauthenticated):
        await anext(stream)


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize("stream_name", ["messages", "unseen_messages"])
async def test_malformed_message_record_surfaces_from_stream(core, store, seed_users, bob, stream_name):
    await seed_users()
    room = await core.create_room(bob)
    await _put(store, room.id, "broken", authorId="bob", status="delivered", createdAt="yesterday-ish")

    stream = getattr(core, stream_name)(room)
    try:
        with pytest.raises(MalformedRecord):
            await anext(stream)
    finally:
        await stream.aclose()
