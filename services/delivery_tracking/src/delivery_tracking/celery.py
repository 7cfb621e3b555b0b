"""Celery application setup and worker initialization."""

import logging

from celery import Celery, signals
from kombu import Queue

from shared.config import KafkaConfig, PostgresConfig
from shared.db.base import create_db_engine, create_session_factory

from delivery_tracking.analytics import (
    AnalyticsSink,
    KafkaAnalyticsPublisher,
    LoggingAnalyticsSink,
)
from delivery_tracking.config import CeleryConfig, DeliveryTrackingConfig
from delivery_tracking.log import setup_logging
from delivery_tracking.state_machine import DeliveryStateMachine
from delivery_tracking.webhooks import WebhookProcessor

logger = logging.getLogger(__name__)

celery_config = CeleryConfig()

app = Celery("delivery_tracking", broker=celery_config.broker_url)

app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_queues=[
        Queue("webhooks"),
        Queue("tracking"),
    ],
    task_default_queue="tracking",
    task_routes={
        "delivery_tracking.tasks.process_webhook": {"queue": "webhooks"},
    },
)

app.autodiscover_tasks(["delivery_tracking"])


@signals.worker_init.connect
def _init_worker(**_kwargs: object) -> None:
    """Initialize shared resources once per worker process."""
    tracking_config = DeliveryTrackingConfig()
    setup_logging(tracking_config.log_level)

    engine = create_db_engine(PostgresConfig())
    session_factory = create_session_factory(engine)

    analytics: AnalyticsSink
    if tracking_config.analytics_enabled:
        analytics = KafkaAnalyticsPublisher(KafkaConfig())
    else:
        analytics = LoggingAnalyticsSink()

    state_machine = DeliveryStateMachine(session_factory, analytics)
    webhook_processor = WebhookProcessor(session_factory, state_machine)

    app.conf.update(
        _engine=engine,
        _analytics=analytics,
        _state_machine=state_machine,
        _webhook_processor=webhook_processor,
        _celery_config=celery_config,
    )
    logger.info("Worker initialized")


@signals.worker_shutdown.connect
def _shutdown_worker(**_kwargs: object) -> None:
    """Clean up resources on worker shutdown."""
    analytics: AnalyticsSink | None = getattr(app.conf, "_analytics", None)
    if analytics is not None:
        analytics.close()
    engine = getattr(app.conf, "_engine", None)
    if engine is not None:
        engine.dispose()
    logger.info("Worker shut down")
