"""Test fixtures for delivery_tracking tests."""

import datetime
import uuid
from collections.abc import Callable, Generator
from unittest.mock import MagicMock

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from shared.db.base import Base
from shared.db.models import NotificationLog
from shared.enums import Channel, DeliveryStatus

from delivery_tracking.analytics import LoggingAnalyticsSink
from delivery_tracking.state_machine import DeliveryStateMachine
from delivery_tracking.webhooks import WebhookProcessor

NOW = datetime.datetime(2026, 2, 1, 9, 30, tzinfo=datetime.UTC)


@pytest.fixture(scope="session")
def db_engine() -> Engine:
    """Create a single in-memory SQLite engine for the test session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(db_engine: Engine) -> Generator[Session, None, None]:
    """Transactional session that rolls back after each test."""
    connection = db_engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection)

    yield session

    session.close()
    if transaction.is_active:
        transaction.rollback()
    connection.close()


@pytest.fixture()
def session_factory(db_session: Session) -> MagicMock:
    """Session factory that always returns the test session.

    Wraps db_session so that ``with session_factory() as session:``
    returns our transactional test session.
    """
    factory = MagicMock(spec=sessionmaker)
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=db_session)
    ctx.__exit__ = MagicMock(return_value=False)
    factory.return_value = ctx
    return factory


@pytest.fixture()
def mock_analytics() -> MagicMock:
    return MagicMock(spec=LoggingAnalyticsSink)


@pytest.fixture()
def state_machine(
    session_factory: MagicMock, mock_analytics: MagicMock
) -> DeliveryStateMachine:
    return DeliveryStateMachine(session_factory, mock_analytics, clock=lambda: NOW)


@pytest.fixture()
def webhook_processor(
    session_factory: MagicMock, state_machine: DeliveryStateMachine
) -> WebhookProcessor:
    return WebhookProcessor(session_factory, state_machine)


@pytest.fixture()
def make_notification(db_session: Session) -> Callable[..., NotificationLog]:
    """Factory inserting a notification log row (queued email by default)."""

    def _make(**overrides: object) -> NotificationLog:
        values: dict = {
            "id": uuid.uuid4(),
            "user_id": uuid.uuid4(),
            "channel": Channel.EMAIL,
            "recipient": "user@example.com",
            "body": "Hello!",
            "status": DeliveryStatus.QUEUED,
        }
        values.update(overrides)
        notification = NotificationLog(**values)
        db_session.add(notification)
        db_session.flush()
        return notification

    return _make
