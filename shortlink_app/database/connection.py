"""
SQLAlchemy engine and session factory for the relational link store.

SQLite is the default; any SQLAlchemy URL works (PostgreSQL, MySQL, ...).
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from shortlink_app.config import settings


class Base(DeclarativeBase):
    pass


def make_engine(database_url: str) -> Engine:
    """
    Create an engine with a process-wide connection pool.

    SQLite connections are shared across the worker threads the store
    uses, so same-thread checking is disabled for it.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False, "timeout": settings.store_timeout_seconds}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autocommit=False, autoflush=False, expire_on_commit=False)


engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)
