"""Fixtures for the shared models and repositories (SQLite in-memory)."""

import uuid
from collections.abc import Callable, Generator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from shared.db.base import Base
from shared.db.models import NotificationLog
from shared.enums import Channel


@pytest.fixture(scope="session")
def db_engine() -> Engine:
    """One in-memory engine with the preference, token and log tables."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """Session inside an outer transaction that is rolled back after each test."""
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection)

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


@pytest.fixture()
def make_log() -> Callable[..., NotificationLog]:
    """Factory for unsaved email notification logs; keyword overrides win."""

    def _make(**overrides: object) -> NotificationLog:
        values: dict = {
            "user_id": uuid.uuid4(),
            "channel": Channel.EMAIL,
            "recipient": "user@example.com",
            "body": "hello",
        }
        values.update(overrides)
        return NotificationLog(**values)

    return _make
