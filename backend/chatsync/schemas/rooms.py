"""Schemas for rooms and room creation payloads."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, constr, model_validator

from chatsync.models.enums import RoomType

from .base import WireModel
from .users import User


class Room(WireModel):
    """A conversation container with its roster hydrated."""

    id: str
    type: RoomType
    name: str | None = None
    image_url: str | None = None
    metadata: dict[str, Any] | None = None
    users: list[User] = Field(..., min_length=1)
    created_at: int | None = None
    updated_at: int | None = None

    @model_validator(mode="after")
    def check_roster_shape(self) -> "Room":
        if self.type == RoomType.DIRECT:
            if len(self.users) != 2:
                raise ValueError("Direct rooms have exactly two participants")
            if self.name is not None:
                raise ValueError("Direct rooms carry no name")
        elif not self.name:
            raise ValueError("Group rooms require a name")
        return self

    @property
    def user_ids(self) -> list[str]:
        return [user.id for user in self.users]


class GroupRoomCreate(BaseModel):
    """Payload for creating a group room."""

    name: constr(strip_whitespace=True, min_length=1) = Field(..., description="Group display name")
    users: list[User] = Field(..., min_length=1, description="Participants besides the creator")
    image_url: str | None = Field(default=None, description="Optional group avatar")
    metadata: dict[str, Any] | None = None
