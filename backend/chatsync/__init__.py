"""Chat synchronisation layer over a document store and a blob store."""

import logging

from chatsync.client import ChatCore
from chatsync.config import Settings, get_settings
from chatsync.core.session import ChatSession

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ["ChatCore", "ChatSession", "Settings", "get_settings"]
