from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings loaded from environment variables."""

    app_name: str = Field(default="chatsync", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level used by configure_logging")

    database_url: str = Field(
        default="sqlite+pysqlite:///./chatsync.db",
        description="SQLAlchemy URL of the bundled document store",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    rooms_collection: str = Field(default="rooms", description="Collection holding room documents")
    users_collection: str = Field(default="users", description="Collection holding user documents")
    messages_collection: str = Field(
        default="messages",
        description="Name of the per-room message sub-collection",
    )

    realtime_redis_url: str | None = Field(
        default=None,
        description="Redis URL used to relay store change notifications between processes",
    )
    realtime_redis_prefix: str = Field(default="chatsync.realtime")
    node_id: str | None = Field(
        default=None,
        description="Identifier of this process on the change relay; generated when omitted",
    )

    media_root: Path = Field(default=Path("uploads"), description="Root directory of the local blob store")
    media_base_url: str = Field(default="/media", description="Base URL for serving stored blobs")
    max_upload_size: int = Field(
        default=50 * 1024 * 1024, description="Maximum blob size in bytes"
    )

    jwt_secret_key: str = Field(default="changeme")
    jwt_algorithm: str = Field(default="HS256")
    jwt_user_claim: str = Field(
        default="sub",
        description="Claim of the identity token carrying the store user id",
    )

    assistant_user_id: str = Field(
        default="bot",
        description="Identifier of the automated participant added to custom-id rooms",
    )
    assistant_first_name: str = Field(default="Coach Bot")

    start_message_text: str = Field(default="Start Bot!")
    cancel_message_text: str = Field(default="Cancel")
    fulfilment_message_text: str = Field(default="Conversation finished!")

    deterministic_direct_rooms: bool = Field(
        default=False,
        description=(
            "Key direct rooms by the sorted pair of participant ids so concurrent "
            "creators converge on one room"
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="CHATSYNC_",
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("media_root", mode="before")
    @classmethod
    def resolve_media_root(cls, value: str | Path) -> Path:
        if isinstance(value, Path):
            return value.resolve()
        return Path(value).resolve()

    @field_validator("media_base_url")
    @classmethod
    def strip_base_url(cls, value: str) -> str:
        return value.rstrip("/")

    def messages_path(self, room_id: str) -> str:
        return f"{self.rooms_collection}/{room_id}/{self.messages_collection}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
