from __future__ import annotations

from enum import Enum


class RoomType(str, Enum):
    """Kinds of conversation containers."""

    DIRECT = "direct"
    GROUP = "group"


class Role(str, Enum):
    """Role a user holds in the directory or inside a room."""

    ADMIN = "admin"
    AGENT = "agent"
    MODERATOR = "moderator"
    USER = "user"


class MessageStatus(str, Enum):
    """Delivery status of a message; only ever moves forward."""

    SENT = "sent"
    DELIVERED = "delivered"
    SEEN = "seen"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)

    def advanced_to(self, other: "MessageStatus") -> "MessageStatus":
        """Return the later of the two statuses."""

        return other if other.rank > self.rank else self


_STATUS_ORDER = (MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.SEEN)
