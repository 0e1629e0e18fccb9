"""Database configuration for the reminder engine."""
import logging
from typing import Generator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from medreminder.core.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """
    Create a SQLModel engine for the given URL.

    SQLite gets foreign keys and WAL enabled on every connection; in-memory
    SQLite shares one connection so every session sees the same database.
    """
    if not database_url.startswith("sqlite"):
        logger.info("Using database: %s", database_url.split("@")[-1])
        return create_engine(database_url, echo=False, pool_pre_ping=True)

    connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        sqlite_engine = create_engine(database_url, echo=False, connect_args=connect_args, poolclass=StaticPool)
    else:
        logger.info("Using SQLite database: %s", database_url)
        sqlite_engine = create_engine(database_url, echo=False, connect_args=connect_args)

    @event.listens_for(sqlite_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if database_url not in ("sqlite://", "sqlite:///:memory:"):
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    return sqlite_engine


engine = build_engine(settings.database_url)


def get_session() -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session
