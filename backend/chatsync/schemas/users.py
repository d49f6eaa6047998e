"""Schemas describing directory users."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from chatsync.models.enums import Role

from .base import WireModel


class User(WireModel):
    """A participant in the user directory."""

    id: str = Field(..., min_length=1)
    first_name: str | None = None
    last_name: str | None = None
    image_url: str | None = None
    last_seen: int | None = None
    role: Role | None = None
    metadata: dict[str, Any] | None = None
    created_at: int | None = None
    updated_at: int | None = None

    @classmethod
    def placeholder(cls, user_id: str) -> "User":
        """Minimal user used when an author cannot be found in a roster."""

        return cls(id=user_id)
