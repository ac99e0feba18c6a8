"""
Database connection and session management.
Uses SQLAlchemy; Postgres in production, SQLite for tests and local runs.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from manga_reader.core.config import ReaderConfig
from manga_reader.utils.logger import get_logger

logger = get_logger("data.database")

# Base class for all our database models
Base = declarative_base()


def make_engine(database_url: str, connect_timeout: int = 5, pool_timeout: int = 10) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite gets a StaticPool so every session sees the same
    database; Postgres gets a connect timeout so a dead server fails the
    request instead of hanging the worker.
    """
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)

    connect_args = {}
    if database_url.startswith("postgresql"):
        connect_args["connect_timeout"] = connect_timeout
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        connect_args=connect_args,
    )


def engine_from_config(config: ReaderConfig) -> Engine:
    return make_engine(config.database_url, config.db_connect_timeout, config.db_pool_timeout)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def create_tables(engine: Engine) -> None:
    """Create all tables that don't exist yet. In production, use migrations."""
    # Import registers the models on Base.metadata
    from manga_reader.data import models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


@contextmanager
def session_scope(session_factory: sessionmaker) -> Iterator[Session]:
    """
    Provide a transactional scope: commit on success, rollback on any error.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
