"""Service factory for hosts embedding the notification service."""

import logging
from dataclasses import dataclass

from cachetools import TTLCache
from celery import Celery
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from shared.config import PostgresConfig
from shared.db.base import create_db_engine, create_session_factory

from notification_service.config import CeleryConfig, NotificationServiceConfig
from notification_service.dispatch import NotificationDispatcher
from notification_service.gate import PreferenceGate
from notification_service.log import setup_logging
from notification_service.preferences import PreferenceService, create_preference_cache

logger = logging.getLogger(__name__)


@dataclass
class NotificationServices:
    engine: Engine
    session_factory: sessionmaker[Session]
    preference_cache: TTLCache
    gate: PreferenceGate
    preferences: PreferenceService
    dispatcher: NotificationDispatcher

    def close(self) -> None:
        self.preference_cache.clear()
        self.engine.dispose()
        logger.info("Notification services closed")


def create_services(
    config: NotificationServiceConfig | None = None,
    postgres_config: PostgresConfig | None = None,
    celery_config: CeleryConfig | None = None,
    celery_app: Celery | None = None,
    engine: Engine | None = None,
) -> NotificationServices:
    """Wire the preference gate, store and dispatcher.

    The host owns the returned bundle, including the preference cache,
    and calls ``close()`` on shutdown. Any collaborator may be passed in
    (tests pass an SQLite engine and a mock Celery app).
    """
    config = config or NotificationServiceConfig()
    celery_config = celery_config or CeleryConfig()
    setup_logging(config.log_level)

    if engine is None:
        engine = create_db_engine(postgres_config or PostgresConfig())
    session_factory = create_session_factory(engine)

    # Used only for send_task; no worker runs in this process.
    if celery_app is None:
        celery_app = Celery(broker=celery_config.broker_url)

    cache = create_preference_cache(config)
    gate = PreferenceGate()
    preferences = PreferenceService(session_factory, cache, gate, config)
    dispatcher = NotificationDispatcher(
        session_factory,
        celery_app,
        preferences,
        celery_config,
        tracking_base_url=config.tracking_base_url if config.email_tracking_enabled else None,
    )

    logger.info(
        "Notification services initialized",
        extra={"cache_ttl_seconds": config.preference_cache_ttl_seconds},
    )
    return NotificationServices(
        engine=engine,
        session_factory=session_factory,
        preference_cache=cache,
        gate=gate,
        preferences=preferences,
        dispatcher=dispatcher,
    )
