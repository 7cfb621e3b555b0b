"""Celery tasks for webhook ingestion, engagement tracking and retries."""

import logging
from typing import Any
from uuid import UUID

from delivery_tracking.celery import app
from delivery_tracking.config import CeleryConfig
from delivery_tracking.errors import NotificationNotFoundError, RetryNotAllowedError
from delivery_tracking.state_machine import DeliveryStateMachine
from delivery_tracking.webhooks import WebhookProcessor

logger = logging.getLogger(__name__)


@app.task(name="delivery_tracking.tasks.process_webhook")
def process_webhook(provider: str, payload: Any) -> int:
    """Apply a provider webhook body. Returns the number of applied events."""
    processor: WebhookProcessor = app.conf._webhook_processor
    applied = processor.process(provider, payload)
    logger.info(
        "Webhook processed", extra={"provider": provider, "applied": applied}
    )
    return applied


@app.task(name="delivery_tracking.tasks.track_open")
def track_open(notification_id: str, metadata: dict[str, Any] | None = None) -> bool:
    state_machine: DeliveryStateMachine = app.conf._state_machine
    try:
        return state_machine.record_open(UUID(notification_id), metadata)
    except NotificationNotFoundError:
        logger.warning(
            "Open tracked for unknown notification",
            extra={"notification_id": notification_id},
        )
        return False


@app.task(name="delivery_tracking.tasks.track_click")
def track_click(
    notification_id: str, url: str, metadata: dict[str, Any] | None = None
) -> bool:
    state_machine: DeliveryStateMachine = app.conf._state_machine
    try:
        return state_machine.record_click(UUID(notification_id), url, metadata)
    except NotificationNotFoundError:
        logger.warning(
            "Click tracked for unknown notification",
            extra={"notification_id": notification_id},
        )
        return False


@app.task(name="delivery_tracking.tasks.retry_notification")
def retry_notification(notification_id: str) -> bool:
    """Reset a failed or bounced notification and enqueue it for sending again."""
    state_machine: DeliveryStateMachine = app.conf._state_machine
    celery_config: CeleryConfig = app.conf._celery_config
    nid = UUID(notification_id)

    try:
        state_machine.retry(nid)
    except (NotificationNotFoundError, RetryNotAllowedError) as exc:
        logger.warning(
            "Retry rejected",
            extra={"notification_id": notification_id, "reason": str(exc)},
        )
        return False

    view = state_machine.get_notification_status(nid)
    channel = view.channel if view is not None else None
    app.send_task(
        celery_config.send_task_name,
        kwargs={"notification_id": notification_id},
        queue=channel,
    )
    return True
