"""Media message sending as a saga spanning the document and blob stores.

Steps:
1. Build the typed image/video message (no side effects on failure).
2. Insert the message record with an empty ``uri`` and ``status = sent``.
3. For videos, upload the thumbnail and keep its URL.
4. Upload the primary file and keep its URL.
5. Patch the record with the URLs.

Compensation: any failure in steps 3-5 deletes the record from step 2 and
surfaces :class:`MediaSendFailed`. Blobs already uploaded are left in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from chatsync.config import Settings, get_settings
from chatsync.core.session import ChatSession
from chatsync.core.storage import BlobSource, BlobStore
from chatsync.exceptions import MediaSendFailed, MissingThumbnailData, UnsupportedMediaPayload
from chatsync.monitoring.metrics import media_saga_total
from chatsync.schemas import (
    ImageMessage,
    MediaMessage,
    PartialImage,
    PartialVideo,
    User,
    VideoMessage,
)
from chatsync.store.base import SERVER_TIMESTAMP, DocumentStore

from .status import build_message, default_visibility, new_message_record

logger = logging.getLogger(__name__)


class MediaSagaState(str, Enum):
    PENDING = "pending"
    CREATED = "created"
    THUMB_UPLOADED = "thumb_uploaded"
    PRIMARY_UPLOADED = "primary_uploaded"
    PATCHED = "patched"
    ROLLED_BACK = "rolled_back"


@dataclass(slots=True)
class MediaUpload:
    """Files accompanying a media message."""

    file: BlobSource
    file_name: str
    thumb_file: bytes | None = None
    thumb_file_name: str | None = None
    custom_path: str | None = None
    content_type: str | None = None


@dataclass(slots=True)
class SagaTransition:
    state: MediaSagaState
    at: datetime
    error: str | None = None


def primary_blob_path(upload: MediaUpload, *, uploader_id: str, room_id: str, message_id: str) -> str:
    if upload.custom_path is not None:
        return f"{upload.custom_path}/{message_id}_{upload.file_name}"
    return f"{uploader_id}/{room_id}/{upload.file_name}"


def thumb_blob_path(upload: MediaUpload, *, uploader_id: str, room_id: str, message_id: str) -> str:
    if upload.thumb_file_name is None:
        raise MissingThumbnailData()
    if upload.custom_path is not None:
        return f"{upload.custom_path}/{message_id}_th_{upload.thumb_file_name}"
    return f"{uploader_id}/{room_id}/{upload.thumb_file_name}"


@dataclass
class MediaSendSaga:
    """One execution of the media send saga.

    ``state`` and ``history`` record how far the saga progressed; ``run`` may
    only be called once.
    """

    store: DocumentStore
    blobs: BlobStore
    uploader_id: str
    room_id: str
    partial: PartialImage | PartialVideo
    upload: MediaUpload
    settings: Settings = field(default_factory=get_settings)
    visibility: list[str] | None = None

    state: MediaSagaState = MediaSagaState.PENDING
    message_id: str | None = None
    thumb_url: str | None = None
    primary_url: str | None = None
    history: list[SagaTransition] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.history.append(SagaTransition(self.state, datetime.now(timezone.utc)))

    @property
    def collection(self) -> str:
        return self.settings.messages_path(self.room_id)

    def _transition(self, state: MediaSagaState, error: str | None = None) -> None:
        self.state = state
        self.history.append(SagaTransition(state, datetime.now(timezone.utc), error))
        logger.debug(
            "Media saga transition",
            extra={"message_id": self.message_id, "state": state.value, "room_id": self.room_id},
        )

    def build(self) -> MediaMessage:
        message = None
        if isinstance(self.partial, (PartialImage, PartialVideo)):
            message = build_message(
                self.partial,
                author=User(id=self.uploader_id),
                room_id=self.room_id,
                settings=self.settings,
            )
        if not isinstance(message, (ImageMessage, VideoMessage)):
            raise UnsupportedMediaPayload("Media messages must be images or videos")
        if isinstance(message, VideoMessage) and (
            self.upload.thumb_file is None or self.upload.thumb_file_name is None
        ):
            raise MissingThumbnailData()
        return message

    async def run(self) -> str:
        if self.state is not MediaSagaState.PENDING:
            raise RuntimeError(f"Media saga already ran (state={self.state.value})")

        message = self.build()
        record = new_message_record(message, self.room_id)
        record["uri"] = ""
        record.pop("thumbUri", None)
        if self.visibility is not None:
            record["visibility"] = list(self.visibility)

        self.message_id = await self.store.add(self.collection, record)
        self._transition(MediaSagaState.CREATED)

        try:
            if isinstance(message, VideoMessage):
                self.thumb_url = await self._upload_thumbnail()
                self._transition(MediaSagaState.THUMB_UPLOADED)
            self.primary_url = await self._upload_primary()
            self._transition(MediaSagaState.PRIMARY_UPLOADED)
            await self.store.update(self.collection, self.message_id, self._patch(record))
            self._transition(MediaSagaState.PATCHED)
        except Exception as exc:
            await self._compensate(exc)
            media_saga_total.inc(outcome="rolled_back")
            raise MediaSendFailed(message_id=self.message_id) from exc

        media_saga_total.inc(outcome="completed")
        logger.info(
            "Media message sent",
            extra={"message_id": self.message_id, "room_id": self.room_id, "type": message.type},
        )
        return self.message_id

    async def _upload_thumbnail(self) -> str:
        path = thumb_blob_path(
            self.upload, uploader_id=self.uploader_id, room_id=self.room_id, message_id=self.message_id
        )
        if self.upload.thumb_file is None:
            raise MissingThumbnailData()
        await self.blobs.upload(path, self.upload.thumb_file)
        return await self.blobs.download_url(path)

    async def _upload_primary(self) -> str:
        path = primary_blob_path(
            self.upload, uploader_id=self.uploader_id, room_id=self.room_id, message_id=self.message_id
        )
        await self.blobs.upload(path, self.upload.file, self.upload.content_type)
        return await self.blobs.download_url(path)

    def _patch(self, record: dict[str, Any]) -> dict[str, Any]:
        patch = {key: value for key, value in record.items() if key not in ("id", "createdAt")}
        patch["updatedAt"] = SERVER_TIMESTAMP
        patch["uri"] = self.primary_url
        if self.thumb_url is not None:
            patch["thumbUri"] = self.thumb_url
        return patch

    async def _compensate(self, cause: Exception) -> None:
        logger.warning(
            "Media send failed in state %s; removing message record",
            self.state.value,
            exc_info=logger.isEnabledFor(logging.DEBUG),
            extra={"message_id": self.message_id, "room_id": self.room_id},
        )
        try:
            await self.store.delete(self.collection, self.message_id)
        except Exception:
            # Best effort: the caller still receives MediaSendFailed.
            logger.exception(
                "Failed to delete message record during rollback",
                extra={"message_id": self.message_id, "room_id": self.room_id},
            )
        self._transition(MediaSagaState.ROLLED_BACK, error=repr(cause))


class MediaUploadCoordinator:
    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        session: ChatSession,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._session = session
        self._settings = settings or get_settings()

    async def send_media_message(
        self,
        partial: PartialImage | PartialVideo,
        room_id: str,
        file: BlobSource,
        file_name: str,
        *,
        thumb_file: bytes | None = None,
        thumb_file_name: str | None = None,
        custom_path: str | None = None,
        content_type: str | None = None,
    ) -> str | None:
        """Send an image or video message together with its file(s).

        Returns the message id, or ``None`` when nobody is signed in.
        """

        if not self._session.is_authenticated:
            logger.debug("Ignoring send_media_message without a signed-in user")
            return None
        if isinstance(file, str):
            file = Path(file)
        saga = MediaSendSaga(
            store=self._store,
            blobs=self._blobs,
            uploader_id=self._session.require_user(),
            room_id=room_id,
            partial=partial,
            upload=MediaUpload(
                file=file,
                file_name=file_name,
                thumb_file=thumb_file,
                thumb_file_name=thumb_file_name,
                custom_path=custom_path,
                content_type=content_type,
            ),
            settings=self._settings,
        )
        saga.build()
        if getattr(partial, "visibility", None) is None:
            saga.visibility = await default_visibility(
                self._store, room_id, saga.uploader_id, settings=self._settings
            )
        return await saga.run()

