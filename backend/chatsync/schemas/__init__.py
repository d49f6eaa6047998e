"""Pydantic schemas for chat entities and payloads."""

from .messages import (
    CancelMessage,
    ChoiceMessage,
    FileMessage,
    FulfilmentMessage,
    ImageMessage,
    MediaMessage,
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
    VideoMessage,
    message_adapter,
    partial_adapter,
)
from .rooms import GroupRoomCreate, Room
from .users import User

__all__ = [
    "CancelMessage",
    "ChoiceMessage",
    "FileMessage",
    "FulfilmentMessage",
    "GroupRoomCreate",
    "ImageMessage",
    "MediaMessage",
    "Message",
    "MessageBase",
    "PartialCancel",
    "PartialChoice",
    "PartialFile",
    "PartialFulfilment",
    "PartialImage",
    "PartialMessage",
    "PartialQuestion",
    "PartialStart",
    "PartialText",
    "PartialVideo",
    "QuestionMessage",
    "Room",
    "StartMessage",
    "TextMessage",
    "User",
    "VideoMessage",
    "message_adapter",
    "partial_adapter",
]
