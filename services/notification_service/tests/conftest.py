"""Test fixtures for notification_service tests."""

import datetime
from collections.abc import Generator
from unittest.mock import MagicMock

import pytest
from cachetools import TTLCache
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from shared.db.base import Base

from notification_service.config import CeleryConfig, NotificationServiceConfig
from notification_service.dispatch import NotificationDispatcher
from notification_service.gate import PreferenceGate
from notification_service.preferences import PreferenceService

# 12:00 UTC, outside the default 22:00-08:00 quiet window.
NOON_UTC = datetime.datetime(2026, 1, 15, 12, 0, tzinfo=datetime.UTC)


class FakeClock:
    """Settable clock passed wherever a ``clock`` callable is accepted."""

    def __init__(self, now: datetime.datetime) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now


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
def session_factory(db_session: Session) -> sessionmaker[Session]:
    """Session factory that always returns the test session.

    This makes `with session_factory() as session:` use our
    transactional test session instead of creating a new one.
    """
    factory = MagicMock(spec=sessionmaker)
    ctx = MagicMock()
    ctx.__enter__ = MagicMock(return_value=db_session)
    ctx.__exit__ = MagicMock(return_value=False)
    factory.return_value = ctx
    return factory


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(NOON_UTC)


@pytest.fixture()
def config() -> NotificationServiceConfig:
    return NotificationServiceConfig(unsubscribe_base_url="https://app.example.com")


@pytest.fixture()
def cache() -> TTLCache:
    return TTLCache(maxsize=100, ttl=300)


@pytest.fixture()
def gate(clock: FakeClock) -> PreferenceGate:
    return PreferenceGate(clock=clock)


@pytest.fixture()
def preference_service(
    session_factory: sessionmaker[Session],
    cache: TTLCache,
    gate: PreferenceGate,
    config: NotificationServiceConfig,
    clock: FakeClock,
) -> PreferenceService:
    return PreferenceService(session_factory, cache, gate, config, clock=clock)


@pytest.fixture()
def mock_celery() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def dispatcher(
    session_factory: sessionmaker[Session],
    mock_celery: MagicMock,
    preference_service: PreferenceService,
) -> NotificationDispatcher:
    return NotificationDispatcher(
        session_factory=session_factory,
        celery_app=mock_celery,
        preferences=preference_service,
        celery_config=CeleryConfig(),
    )
