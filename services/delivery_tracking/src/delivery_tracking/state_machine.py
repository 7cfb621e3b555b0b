"""Canonical delivery lifecycle for notification log rows."""

import datetime
import logging
from collections.abc import Callable
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.db.models import NotificationLog
from shared.db.repositories import NotificationLogRepository
from shared.enums import FAILURE_STATUSES, DeliveryStatus

from delivery_tracking.analytics import AnalyticsSink
from delivery_tracking.errors import NotificationNotFoundError, RetryNotAllowedError
from delivery_tracking.stats import (
    CampaignDeliveryStats,
    UserDeliveryStats,
    aggregate_campaign_stats,
    aggregate_user_stats,
)
from delivery_tracking.status_map import is_regression

_TIMESTAMP_FIELDS: dict[str, str] = {
    DeliveryStatus.SENT: "sent_at",
    DeliveryStatus.DELIVERED: "delivered_at",
    DeliveryStatus.OPENED: "opened_at",
    DeliveryStatus.CLICKED: "clicked_at",
}


class NotificationStatusView(BaseModel):
    id: UUID
    status: DeliveryStatus
    channel: str | None = None
    provider: str | None = None
    provider_id: str | None = None
    error_message: str | None = None
    sent_at: datetime.datetime | None = None
    delivered_at: datetime.datetime | None = None
    opened_at: datetime.datetime | None = None
    clicked_at: datetime.datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_log(cls, log: NotificationLog) -> "NotificationStatusView":
        # ORM instances expose the table MetaData as `.metadata`; the JSON lives on `.meta`.
        return cls(
            id=log.id,
            status=log.status,
            channel=log.channel,
            provider=log.provider,
            provider_id=log.provider_id,
            error_message=log.error_message,
            sent_at=log.sent_at,
            delivered_at=log.delivered_at,
            opened_at=log.opened_at,
            clicked_at=log.clicked_at,
            metadata=dict(log.meta or {}),
        )


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class DeliveryStateMachine:
    """Applies status changes to notification logs.

    Each change runs in its own transaction under a row lock, so the
    "only stamp a timestamp once" rule holds for concurrent webhooks on
    the same notification.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        analytics: AnalyticsSink,
        clock: Callable[[], datetime.datetime] = _utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._analytics = analytics
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def apply_status(
        self,
        notification_id: UUID,
        status: DeliveryStatus | str,
        *,
        provider: str | None = None,
        provider_id: str | None = None,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
        allow_regression: bool = False,
    ) -> bool:
        """Move a notification to *status*.

        Returns False when the change was ignored as a backward move.
        Raises NotificationNotFoundError for an unknown id; store errors
        are logged and re-raised.
        """
        return self._transition(
            notification_id,
            DeliveryStatus(status),
            provider=provider,
            provider_id=provider_id,
            error_message=error_message,
            metadata=metadata,
            allow_regression=allow_regression,
        )

    def record_open(
        self, notification_id: UUID, metadata: dict[str, Any] | None = None
    ) -> bool:
        """Record the first open only; later opens are logged no-ops."""
        now = self._clock()
        return self._transition(
            notification_id,
            DeliveryStatus.OPENED,
            metadata={**(metadata or {}), "first_open_at": now.isoformat()},
            first_open_only=True,
        )

    def record_click(
        self,
        notification_id: UUID,
        url: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        # Every click is kept: several links in one message are distinct events.
        now = self._clock()
        return self._transition(
            notification_id,
            DeliveryStatus.CLICKED,
            metadata={
                **(metadata or {}),
                "clicked_url": url,
                "click_timestamp": now.isoformat(),
            },
        )

    def retry(self, notification_id: UUID) -> None:
        """Reset a failed or bounced notification to ``queued``.

        Raises RetryNotAllowedError for any other status.
        """
        now = self._clock()
        with self._session_factory() as session:
            repo = NotificationLogRepository(session)
            try:
                log = repo.get_for_update(notification_id)
                if log is None:
                    raise NotificationNotFoundError(notification_id)
                if log.status not in FAILURE_STATUSES:
                    raise RetryNotAllowedError(notification_id, log.status)

                meta = dict(log.meta or {})
                meta["retry_count"] = int(meta.get("retry_count", 0)) + 1
                meta["retried_at"] = now.isoformat()
                log.status = DeliveryStatus.QUEUED
                log.error_message = None
                log.meta = meta
                session.commit()
            except SQLAlchemyError:
                session.rollback()
                self._logger.exception(
                    "Failed to reset notification for retry",
                    extra={"notification_id": str(notification_id)},
                )
                raise

        self._logger.info(
            "Notification reset for retry",
            extra={"notification_id": str(notification_id), "retry_count": meta["retry_count"]},
        )
        self._track(f"notification.{DeliveryStatus.QUEUED}", notification_id, {"retry": True})

    def get_notification_status(
        self, notification_id: UUID
    ) -> NotificationStatusView | None:
        with self._session_factory() as session:
            log = NotificationLogRepository(session).get_by_id(notification_id)
            if log is None:
                return None
            return NotificationStatusView.from_log(log)

    def get_user_delivery_stats(
        self,
        user_id: UUID,
        date_from: datetime.datetime | None = None,
        date_to: datetime.datetime | None = None,
    ) -> UserDeliveryStats:
        try:
            with self._session_factory() as session:
                rows = NotificationLogRepository(session).list_status_channels_for_user(
                    user_id, date_from, date_to
                )
        except SQLAlchemyError:
            self._logger.exception(
                "Failed to get user delivery stats", extra={"user_id": str(user_id)}
            )
            raise
        return aggregate_user_stats(rows)

    def get_campaign_delivery_stats(self, campaign_id: str) -> CampaignDeliveryStats:
        try:
            with self._session_factory() as session:
                statuses = NotificationLogRepository(session).list_statuses_for_campaign(
                    campaign_id
                )
        except SQLAlchemyError:
            self._logger.exception(
                "Failed to get campaign delivery stats",
                extra={"campaign_id": campaign_id},
            )
            raise
        return aggregate_campaign_stats(statuses)

    def _transition(
        self,
        notification_id: UUID,
        status: DeliveryStatus,
        *,
        provider: str | None = None,
        provider_id: str | None = None,
        error_message: str | None = None,
        metadata: dict[str, Any] | None = None,
        allow_regression: bool = False,
        first_open_only: bool = False,
    ) -> bool:
        now = self._clock()
        log_ctx = {"notification_id": str(notification_id), "status": str(status)}

        with self._session_factory() as session:
            repo = NotificationLogRepository(session)
            try:
                log = repo.get_for_update(notification_id)
                if log is None:
                    raise NotificationNotFoundError(notification_id)

                if first_open_only and log.opened_at is not None:
                    self._logger.info("Notification already marked as opened", extra=log_ctx)
                    return False

                if not allow_regression and is_regression(log.status, status):
                    self._logger.warning(
                        "Ignoring backward status transition",
                        extra={**log_ctx, "current_status": log.status},
                    )
                    return False

                log.status = status
                timestamp_field = _TIMESTAMP_FIELDS.get(status)
                if timestamp_field is not None and getattr(log, timestamp_field) is None:
                    setattr(log, timestamp_field, now)
                if provider is not None:
                    log.provider = provider
                if provider_id is not None:
                    log.provider_id = provider_id
                if error_message is not None:
                    log.error_message = error_message
                if metadata:
                    log.meta = {**(log.meta or {}), **metadata}

                session.commit()
            except SQLAlchemyError:
                session.rollback()
                self._logger.exception("Failed to update notification status", extra=log_ctx)
                raise

        self._logger.info("Notification status updated", extra=log_ctx)
        self._track(
            f"notification.{status}",
            notification_id,
            {"provider": provider, "provider_id": provider_id},
        )
        return True

    def _track(
        self, event: str, notification_id: UUID, metadata: dict[str, Any]
    ) -> None:
        try:
            self._analytics.track(event, notification_id, metadata)
        except Exception:
            self._logger.warning(
                "Failed to record analytics event",
                extra={"event": event, "notification_id": str(notification_id)},
                exc_info=True,
            )
