"""Explicit authentication context passed to every chat operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt

from chatsync.config import Settings, get_settings
from chatsync.exceptions import Unauthenticated


@dataclass(slots=True, frozen=True)
class ChatSession:
    """Identity of the user on whose behalf operations run.

    ``user_id`` is ``None`` while nobody is signed in to the store.
    """

    user_id: str | None = None

    @classmethod
    def anonymous(cls) -> "ChatSession":
        return cls(user_id=None)

    @classmethod
    def from_claims(cls, claims: dict[str, Any], settings: Settings | None = None) -> "ChatSession":
        settings = settings or get_settings()
        subject = claims.get(settings.jwt_user_claim)
        if not isinstance(subject, str) or not subject:
            raise Unauthenticated(f"Token carries no '{settings.jwt_user_claim}' claim")
        return cls(user_id=subject)

    @classmethod
    def from_id_token(cls, token: str, settings: Settings | None = None) -> "ChatSession":
        """Build a session from the identity token issued by the store's auth service."""

        settings = settings or get_settings()
        try:
            claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise Unauthenticated("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise Unauthenticated("Could not validate credentials") from exc
        return cls.from_claims(claims, settings)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def require_user(self) -> str:
        if self.user_id is None:
            raise Unauthenticated()
        return self.user_id
