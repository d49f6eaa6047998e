"""Schemas for messages and the partial payloads used to send them."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from chatsync.models.enums import MessageStatus

from .base import WireModel
from .users import User


class MessageBase(WireModel):
    """Fields shared by every message variant."""

    id: str = ""
    room_id: str | None = None
    author: User
    status: MessageStatus | None = None
    visibility: list[str] = Field(default_factory=list)
    created_at: int | None = None
    updated_at: int | None = None
    metadata: dict[str, Any] | None = None

    def is_visible_to(self, user_id: str) -> bool:
        return user_id in self.visibility


class TextMessage(MessageBase):
    type: Literal["text"] = "text"
    text: str


class ImageMessage(MessageBase):
    type: Literal["image"] = "image"
    name: str
    size: int = Field(..., ge=0)
    uri: str
    height: float | None = None
    width: float | None = None


class VideoMessage(MessageBase):
    type: Literal["video"] = "video"
    name: str
    size: int = Field(..., ge=0)
    uri: str
    thumb_uri: str | None = None
    height: float | None = None
    width: float | None = None


class FileMessage(MessageBase):
    type: Literal["file"] = "file"
    name: str
    size: int = Field(..., ge=0)
    uri: str
    mime_type: str | None = None


class ChoiceMessage(MessageBase):
    type: Literal["choice"] = "choice"
    text: str
    options: list[str] = Field(..., min_length=1)


class QuestionMessage(MessageBase):
    type: Literal["question"] = "question"
    text: str


class StartMessage(MessageBase):
    type: Literal["start"] = "start"
    text: str


class CancelMessage(MessageBase):
    type: Literal["cancel"] = "cancel"
    text: str


class FulfilmentMessage(MessageBase):
    type: Literal["fulfilment"] = "fulfilment"
    text: str


Message = Annotated[
    Union[
        TextMessage,
        ImageMessage,
        VideoMessage,
        FileMessage,
        ChoiceMessage,
        QuestionMessage,
        StartMessage,
        CancelMessage,
        FulfilmentMessage,
    ],
    Field(discriminator="type"),
]

MediaMessage = Union[ImageMessage, VideoMessage]

message_adapter: TypeAdapter[Message] = TypeAdapter(Message)


# ---------------------------------------------------------------------------
# Partial payloads
# ---------------------------------------------------------------------------


class PartialBase(BaseModel):
    """Caller-supplied content of a message that is about to be sent."""

    model_config = ConfigDict(extra="forbid")

    metadata: dict[str, Any] | None = None
    visibility: list[str] | None = Field(
        default=None,
        description="User ids allowed to observe the message; defaults to the room participants",
    )


class PartialText(PartialBase):
    kind: Literal["text"] = "text"
    text: str


class PartialImage(PartialBase):
    kind: Literal["image"] = "image"
    name: str
    size: int = Field(..., ge=0)
    uri: str = ""
    height: float | None = None
    width: float | None = None


class PartialVideo(PartialBase):
    kind: Literal["video"] = "video"
    name: str
    size: int = Field(..., ge=0)
    uri: str = ""
    thumb_uri: str | None = None
    height: float | None = None
    width: float | None = None


class PartialFile(PartialBase):
    kind: Literal["file"] = "file"
    name: str
    size: int = Field(..., ge=0)
    uri: str
    mime_type: str | None = None


class PartialChoice(PartialBase):
    kind: Literal["choice"] = "choice"
    text: str
    options: list[str] = Field(..., min_length=1)


class PartialQuestion(PartialBase):
    kind: Literal["question"] = "question"
    text: str


class PartialStart(PartialBase):
    kind: Literal["start"] = "start"


class PartialCancel(PartialBase):
    kind: Literal["cancel"] = "cancel"


class PartialFulfilment(PartialBase):
    kind: Literal["fulfilment"] = "fulfilment"


PartialMessage = Annotated[
    Union[
        PartialText,
        PartialImage,
        PartialVideo,
        PartialFile,
        PartialChoice,
        PartialQuestion,
        PartialStart,
        PartialCancel,
        PartialFulfilment,
    ],
    Field(discriminator="kind"),
]

partial_adapter: TypeAdapter[PartialMessage] = TypeAdapter(PartialMessage)
