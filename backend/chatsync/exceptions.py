"""Error taxonomy of the chat core."""

from __future__ import annotations


class ChatSyncError(Exception):
    """Base class for errors raised by the chat core."""


class Unauthenticated(ChatSyncError):
    """Raised when an operation needs a signed-in user and none is known."""

    def __init__(self, message: str = "User does not exist") -> None:
        super().__init__(message)


class MalformedRecord(ChatSyncError):
    """Raised when a stored record cannot be mapped onto its entity."""

    def __init__(self, message: str, *, record_id: str | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id


class UnsupportedMediaPayload(ChatSyncError, ValueError):
    """Raised when a media send is requested for a non image/video payload."""


class MissingThumbnailData(ChatSyncError):
    """Raised when a video upload lacks its thumbnail bytes or file name."""

    def __init__(self, message: str = "Missing thumb data") -> None:
        super().__init__(message)


class MediaSendFailed(ChatSyncError):
    """Raised when a media send fails after its message record was created."""

    def __init__(self, message: str = "Media send failed", *, message_id: str | None = None) -> None:
        super().__init__(message)
        self.message_id = message_id
