"""SQLAlchemy engine and session factory construction."""

from collections.abc import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from invoice_chat.utils.config import DatabaseConfig
from invoice_chat.utils.logger import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def build_engine(config: DatabaseConfig) -> Engine:
    """Create an engine for the configured database URL.

    SQLite connections are shared across the request thread pool, and an
    in-memory SQLite URL is pinned to a single connection so every session
    sees the same database.

    Args:
        config: Database configuration.

    Returns:
        A SQLAlchemy engine.
    """
    kwargs: dict = {"echo": config.echo, "pool_pre_ping": True}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in config.url or config.url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(config.url, **kwargs)
    logger.info("Database engine created for %s", engine.url.render_as_string())
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to ``engine``."""
    return sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False
    )


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    from invoice_chat.db import models  # noqa: F401  registers the mappers

    Base.metadata.create_all(bind=engine)
    logger.info("Database schema initialized")


def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """Yield a session and always close it afterwards."""
    session = factory()
    try:
        yield session
    finally:
        session.close()
