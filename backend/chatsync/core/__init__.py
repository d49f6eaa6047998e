"""Session context and blob storage."""

from .session import ChatSession
from .storage import BlobStore, BlobStoreError, LocalBlobStore

__all__ = ["BlobStore", "BlobStoreError", "ChatSession", "LocalBlobStore"]
