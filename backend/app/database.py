"""
Database connection and session management module.

Uses SQLAlchemy for ORM operations. Supports PostgreSQL (production/Docker)
and SQLite (local development fallback).
Provides the engine factory and session factory used by the exam store.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from app.config import DATABASE_URL, STORE_TIMEOUT_SECONDS


def build_engine(url: str = DATABASE_URL, timeout_seconds: float = STORE_TIMEOUT_SECONDS,
                 **overrides) -> Engine:
    """
    Create an engine configured for the given database URL.

    Every store call is bounded by ``timeout_seconds``: SQLite waits at most
    that long on a locked database, PostgreSQL aborts statements running
    longer than that.
    """
    # SQLite does not support pool_size, max_overflow, or pool_pre_ping
    engine_kwargs = {"echo": False}

    if url.startswith("postgresql"):
        engine_kwargs.update({
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,
            "pool_timeout": timeout_seconds,
            "connect_args": {
                "connect_timeout": max(1, int(timeout_seconds)),
                "options": "-c statement_timeout={}".format(int(timeout_seconds * 1000)),
            },
        })
    elif url.startswith("sqlite"):
        # check_same_thread=False because FastAPI runs sync endpoints on a threadpool
        engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": timeout_seconds}

    engine_kwargs.update(overrides)
    new_engine = create_engine(url, **engine_kwargs)

    if url.startswith("sqlite"):
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            if ":memory:" not in url:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine()

# Session factory - creates new database sessions
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def create_tables(bind: Engine = None):
    """
    Create all database tables directly (used for SQLite local dev and tests).
    For PostgreSQL, use Alembic migrations instead.
    """
    # Register models with Base.metadata before creating
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
