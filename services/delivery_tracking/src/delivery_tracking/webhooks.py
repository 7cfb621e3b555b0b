"""Provider webhook processing into canonical status changes."""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from shared.db.repositories import NotificationLogRepository
from shared.enums import DeliveryStatus, WebhookProvider

from delivery_tracking.payloads import (
    FirebaseWebhook,
    SendGridEvent,
    SendGridWebhook,
    TwilioWebhook,
    parse_webhook,
)
from delivery_tracking.state_machine import DeliveryStateMachine
from delivery_tracking.status_map import map_provider_status


class WebhookProcessor:
    """Applies provider webhooks to notification logs.

    ``process`` never raises: providers only need an acknowledgement and
    must not be pushed into retrying because of an application error.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        state_machine: DeliveryStateMachine,
        logger: logging.Logger | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._state_machine = state_machine
        self._logger = logger or logging.getLogger(__name__)

    def process(self, provider: str, payload: Any) -> int:
        """Process one webhook body. Returns how many events were applied."""
        try:
            webhook = parse_webhook(provider, payload)
        except ValueError:
            self._logger.warning(
                "Rejected webhook payload",
                extra={"provider": provider},
                exc_info=True,
            )
            return 0

        try:
            if isinstance(webhook, TwilioWebhook):
                return self._process_twilio(webhook)
            if isinstance(webhook, SendGridWebhook):
                return self._process_sendgrid(webhook)
            return self._process_firebase(webhook)
        except Exception:
            self._logger.exception("Error processing webhook", extra={"provider": provider})
            return 0

    def _find_notification(self, provider_id: str) -> UUID | None:
        with self._session_factory() as session:
            return NotificationLogRepository(session).get_id_by_provider_id(provider_id)

    def _process_twilio(self, webhook: TwilioWebhook) -> int:
        if not webhook.message_sid:
            self._logger.warning("Twilio webhook missing MessageSid")
            return 0

        notification_id = self._find_notification(webhook.message_sid)
        if notification_id is None:
            self._logger.warning(
                "Notification not found for Twilio webhook",
                extra={"message_sid": webhook.message_sid},
            )
            return 0

        status = map_provider_status(WebhookProvider.TWILIO, webhook.message_status)
        metadata: dict[str, Any] = {"provider_status": webhook.message_status}
        if webhook.error_code is not None:
            metadata["error_code"] = webhook.error_code

        applied = self._state_machine.apply_status(
            notification_id,
            status,
            provider=WebhookProvider.TWILIO,
            provider_id=webhook.message_sid,
            error_message=webhook.error_message,
            metadata=metadata,
        )
        return int(applied)

    def _process_sendgrid(self, webhook: SendGridWebhook) -> int:
        applied = 0
        for event in webhook.events:
            try:
                applied += self._apply_sendgrid_event(event)
            except Exception:
                self._logger.exception(
                    "Failed to process SendGrid event",
                    extra={"sg_message_id": event.sg_message_id, "event": event.event},
                )
        return applied

    def _apply_sendgrid_event(self, event: SendGridEvent) -> int:
        status = map_provider_status(WebhookProvider.SENDGRID, event.event)
        if status is None:
            self._logger.debug("Ignoring SendGrid event", extra={"event": event.event})
            return 0

        notification_id = self._find_notification(event.sg_message_id)
        if notification_id is None:
            self._logger.warning(
                "Notification not found for SendGrid event",
                extra={"sg_message_id": event.sg_message_id},
            )
            return 0

        if status == DeliveryStatus.OPENED:
            return int(self._state_machine.record_open(notification_id))
        if status == DeliveryStatus.CLICKED:
            return int(self._state_machine.record_click(notification_id, event.url))
        return int(
            self._state_machine.apply_status(
                notification_id,
                status,
                provider=WebhookProvider.SENDGRID,
                metadata={"provider_event": event.event},
            )
        )

    def _process_firebase(self, webhook: FirebaseWebhook) -> int:
        if not webhook.message_id:
            self._logger.info("Firebase webhook received without message_id")
            return 0

        status = map_provider_status(WebhookProvider.FIREBASE, webhook.status)
        if status is None:
            self._logger.warning(
                "Unknown push status", extra={"status": webhook.status}
            )
            return 0

        notification_id = self._find_notification(webhook.message_id)
        if notification_id is None:
            self._logger.warning(
                "Notification not found for Firebase webhook",
                extra={"message_id": webhook.message_id},
            )
            return 0

        applied = self._state_machine.apply_status(
            notification_id,
            status,
            provider=WebhookProvider.FIREBASE,
            provider_id=webhook.message_id,
            error_message=webhook.error,
        )
        return int(applied)
