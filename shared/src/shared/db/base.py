"""Declarative base plus engine and session factories."""

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from shared.config import PostgresConfig


class Base(DeclarativeBase):
    """Base class for all notification ORM models."""


def create_db_engine(config: PostgresConfig | str, **kwargs: object) -> Engine:
    """Create an engine from a ``PostgresConfig`` or a raw DSN.

    When a config is given its ``pool_pre_ping`` setting is applied so
    pooled connections survive a PostgreSQL restart.
    """
    if isinstance(config, PostgresConfig):
        kwargs.setdefault("pool_pre_ping", config.pool_pre_ping)
        return create_engine(config.dsn, **kwargs)
    return create_engine(config, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a sessionmaker bound to *engine*.

    ``expire_on_commit=False`` keeps loaded rows usable after the short
    per-operation sessions used by the services are committed and closed.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)
