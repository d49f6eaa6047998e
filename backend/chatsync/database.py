from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from chatsync.config import Settings, get_settings
from chatsync.models import Base


def create_store_engine(settings: Settings | None = None) -> Engine:
    """Build the engine backing the bundled document store."""

    settings = settings or get_settings()
    options: dict = {"echo": settings.database_echo, "future": True, "pool_pre_ping": True}
    if settings.database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
    else:
        # pool_size: connections kept open; max_overflow: extra connections on demand
        options.update(pool_size=10, max_overflow=20)
    return create_engine(settings.database_url, **options)


def create_session_factory(engine: Engine, *, create_tables: bool = True) -> sessionmaker[Session]:
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Yield a short-lived session, committing on success and rolling back on error."""

    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
