"""Engine, session factory and the request-scoped session dependency.

Reports, verifications and rewards are written from concurrent requests
(admin verification, auto-verify, reward retries), so SQLite connections
wait on a busy database instead of failing straight away, and always
enforce foreign keys.
"""
from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings
from app.models import Base

SQLITE_BUSY_TIMEOUT_SECONDS = 30

engine: Engine | None = None
SessionLocal: sessionmaker[Session] | None = None


def is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def make_engine(database_url: str, *, echo: bool = False) -> Engine:
    """Build an engine for ``database_url`` with the backend-specific connection options."""

    if is_sqlite(database_url):
        connect_args = {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS}
        return create_engine(database_url, future=True, echo=echo, connect_args=connect_args)
    return create_engine(database_url, future=True, echo=echo, pool_pre_ping=True)


def make_sessionmaker(bind: Engine) -> sessionmaker[Session]:
    """Session factory used by requests and services.

    Objects stay loaded after commit: services commit the verification before
    the payout and keep reading the same report afterwards.
    """

    return sessionmaker(bind=bind, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def init_engine() -> Engine:
    """Create the application engine on first use."""

    global engine, SessionLocal
    if engine is None:
        engine = make_engine(get_settings().database_url)
        SessionLocal = make_sessionmaker(engine)
    return engine


def get_engine() -> Engine:
    return engine if engine is not None else init_engine()


def get_sessionmaker() -> sessionmaker[Session]:
    if SessionLocal is None:
        init_engine()
    assert SessionLocal is not None  # for type-checkers
    return SessionLocal


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    if dbapi_connection.__class__.__module__.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_all(bind: Engine | None = None) -> None:
    """Create every table from the model metadata; migrations remain the normal path."""

    Base.metadata.create_all(bind=bind or get_engine())


def close_engine() -> None:
    global engine, SessionLocal
    if engine is not None:
        engine.dispose()
    engine = None
    SessionLocal = None


def get_db() -> Generator[Session, None, None]:
    """Yield one session per request and always close it."""

    session = get_sessionmaker()()
    try:
        yield session
    finally:
        session.close()


__all__ = [
    "Base",
    "close_engine",
    "create_all",
    "get_db",
    "get_engine",
    "get_sessionmaker",
    "init_engine",
    "is_sqlite",
    "make_engine",
    "make_sessionmaker",
]
