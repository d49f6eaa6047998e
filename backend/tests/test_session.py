"""Tests for the session context built from identity tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from chatsync.core.session import ChatSession
from chatsync.exceptions import Unauthenticated


def _token(settings, **claims) -> str:
    payload = {"exp": datetime.now(timezone.utc) + timedelta(minutes=5), **claims}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def test_session_from_valid_token(settings):
    session = ChatSession.from_id_token(_token(settings, sub="alice"), settings)
    assert session.user_id == "alice"
    assert session.is_authenticated
    assert session.require_user() == "alice"


def test_custom_user_claim(settings):
    settings = settings.model_copy(update={"jwt_user_claim": "uid"})
    session = ChatSession.from_id_token(_token(settings, uid="bob", sub="ignored"), settings)
    assert session.user_id == "bob"


def test_expired_token_is_rejected(settings):
    token = jwt.encode(
        {"sub": "alice", "exp": datetime.now(timezone.utc) - timedelta(minutes=1)},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )
    with pytest.raises(Unauthenticated, match="expired"):
        ChatSession.from_id_token(token, settings)


def test_foreign_signature_is_rejected(settings):
    token = jwt.encode({"sub": "alice"}, "a-different-secret-key-for-chatsync", algorithm="HS256")
    with pytest.raises(Unauthenticated):
        ChatSession.from_id_token(token, settings)


def test_token_without_subject_is_rejected(settings):
    with pytest.raises(Unauthenticated):
        ChatSession.from_id_token(_token(settings, name="anon"), settings)


def test_anonymous_session_requires_user():
    session = ChatSession.anonymous()
    assert not session.is_authenticated
    with pytest.raises(Unauthenticated, match="User does not exist"):
        session.require_user()
