"""Database bootstrap helpers.

The engine and session factory are built by the composition root and passed to
the repository; there is no module-level engine.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


def make_engine(dsn: str, **kwargs):
    """Create one SQLAlchemy engine for the process."""

    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(dsn, **kwargs)


def make_session_factory(engine) -> sessionmaker:
    # `expire_on_commit=False` keeps ORM objects readable after commit.
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
