"""Database models and shared enumerations."""

from .base import Base
from .documents import Document
from .enums import MessageStatus, Role, RoomType

__all__ = ["Base", "Document", "MessageStatus", "Role", "RoomType"]
