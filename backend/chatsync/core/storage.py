"""Blob storage used for media message files."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Final, Protocol
from urllib.parse import quote

from chatsync.config import Settings, get_settings

logger = logging.getLogger(__name__)

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB

BlobSource = bytes | bytearray | memoryview | Path


class BlobStoreError(Exception):
    """Raised when a blob cannot be stored, located or removed."""


class BlobStore(Protocol):
    """Upload, locate and remove blobs addressed by slash separated paths."""

    async def upload(self, path: str, data: BlobSource, content_type: str | None = None) -> None:
        """Store ``data`` under ``path``, replacing any previous blob."""

    async def download_url(self, path: str) -> str:
        """Return a stable retrieval URL for the blob at ``path``."""

    async def delete(self, path: str) -> None:
        """Remove the blob at ``path``."""


class LocalBlobStore:
    """Stores blobs as files below a media root directory."""

    def __init__(self, root: Path, base_url: str, *, max_upload_size: int | None = None) -> None:
        self._root = root.resolve()
        self._base_url = base_url.rstrip("/")
        self._max_upload_size = max_upload_size

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LocalBlobStore":
        settings = settings or get_settings()
        return cls(settings.media_root, settings.media_base_url, max_upload_size=settings.max_upload_size)

    @property
    def root(self) -> Path:
        return self._root

    def resolve_path(self, path: str) -> Path:
        """Return the absolute location of ``path`` inside the media root."""

        relative = PurePosixPath(path)
        if not path or relative.is_absolute() or ".." in relative.parts:
            raise BlobStoreError(f"Invalid blob path '{path}'")
        candidate = (self._root / Path(*relative.parts)).resolve()
        if not candidate.is_relative_to(self._root):
            raise BlobStoreError(f"Invalid blob path '{path}'")
        return candidate

    async def upload(self, path: str, data: BlobSource, content_type: str | None = None) -> None:
        target = self.resolve_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)

        total_size = 0
        try:
            with target.open("wb") as buffer:
                if isinstance(data, Path):
                    with data.open("rb") as source:
                        while chunk := source.read(_CHUNK_SIZE):
                            total_size += len(chunk)
                            self._check_size(total_size, path)
                            buffer.write(chunk)
                else:
                    total_size = len(data)
                    self._check_size(total_size, path)
                    buffer.write(data)
        except (BlobStoreError, OSError) as exc:
            if target.exists():
                target.unlink()
            if isinstance(exc, BlobStoreError):
                raise
            raise BlobStoreError(f"Failed to store blob '{path}'") from exc

        logger.debug(
            "Stored blob", extra={"path": path, "size": total_size, "content_type": content_type}
        )

    async def download_url(self, path: str) -> str:
        if not self.resolve_path(path).is_file():
            raise BlobStoreError(f"Blob not found: '{path}'")
        return f"{self._base_url}/{quote(path)}"

    async def delete(self, path: str) -> None:
        target = self.resolve_path(path)
        try:
            target.unlink()
        except FileNotFoundError as exc:
            raise BlobStoreError(f"Blob not found: '{path}'") from exc

    def _check_size(self, size: int, path: str) -> None:
        if self._max_upload_size is not None and size > self._max_upload_size:
            raise BlobStoreError(f"Blob '{path}' exceeds allowed size")
