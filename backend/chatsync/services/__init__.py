"""Chat operations composed over the document and blob stores."""

from .media import MediaSagaState, MediaSendSaga, MediaUpload, MediaUploadCoordinator
from .messages import MessageProjector
from .rooms import RoomResolver, direct_room_key
from .status import MessageOperations
from .users import UserDirectory

__all__ = [
    "MediaSagaState",
    "MediaSendSaga",
    "MediaUpload",
    "MediaUploadCoordinator",
    "MessageOperations",
    "MessageProjector",
    "RoomResolver",
    "UserDirectory",
    "direct_room_key",
]
