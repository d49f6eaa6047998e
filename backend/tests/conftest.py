"""Shared pytest fixtures for chat core tests."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Awaitable, Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from chatsync.client import ChatCore
from chatsync.config import Settings
from chatsync.core.session import ChatSession
from chatsync.core.storage import BlobSource, BlobStoreError
from chatsync.database import create_session_factory
from chatsync.models import Base, Role
from chatsync.schemas import User
from chatsync.store import SqlDocumentStore

ALICE = User(id="alice", first_name="Alice", last_name="Archer", role=Role.ADMIN)
BOB = User(id="bob", first_name="Bob", role=Role.USER)
CAROL = User(id="carol", first_name="Carol", image_url="https://img.test/carol.png")


class FakeBlobStore:
    """In-memory blob store; uploads whose path contains ``fail_on`` raise."""

    def __init__(self, *, fail_on: str | None = None) -> None:
        self.fail_on = fail_on
        self.blobs: dict[str, bytes] = {}
        self.content_types: dict[str, str | None] = {}

    async def upload(self, path: str, data: BlobSource, content_type: str | None = None) -> None:
        if self.fail_on is not None and self.fail_on in path:
            raise BlobStoreError(f"upload refused for '{path}'")
        self.blobs[path] = data.read_bytes() if isinstance(data, Path) else bytes(data)
        self.content_types[path] = content_type

    async def download_url(self, path: str) -> str:
        if path not in self.blobs:
            raise BlobStoreError(f"Blob not found: '{path}'")
        return f"https://blobs.test/{path}"

    async def delete(self, path: str) -> None:
        self.blobs.pop(path, None)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and any ``.env`` file."""

    return Settings(
        _env_file=None,
        media_root=tmp_path / "media",
        jwt_secret_key="test-secret-key-for-chatsync-tests",
    )


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    return create_session_factory(test_engine, create_tables=False)


@pytest.fixture()
def store(session_factory) -> SqlDocumentStore:
    return SqlDocumentStore(session_factory)


@pytest.fixture()
def blobs() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture()
def blob_store_factory() -> type[FakeBlobStore]:
    return FakeBlobStore


@pytest.fixture()
def core(store, blobs, settings) -> ChatCore:
    """Chat core signed in as alice."""

    return ChatCore(store, blobs, ChatSession(user_id="alice"), settings)


@pytest.fixture()
def seed_users(core) -> Callable[..., Awaitable[None]]:
    """Return a coroutine function storing the given users (alice, bob, carol by default)."""

    async def seed(*users: User) -> None:
        for user in users or (ALICE, BOB, CAROL):
            await core.create_user(user)

    return seed


@pytest.fixture()
def alice() -> User:
    return ALICE


@pytest.fixture()
def bob() -> User:
    return BOB


@pytest.fixture()
def carol() -> User:
    return CAROL
