"""Data access repositories with constructor-injected sessions."""

import datetime
from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from shared.db.models import (
    NotificationLog,
    NotificationPreference,
    NotificationTemplate,
    UnsubscribeToken,
)


class PreferenceRepository:
    """Data access for the notification_preferences table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_by_user_id(self, user_id: UUID) -> NotificationPreference | None:
        return self._session.get(NotificationPreference, user_id)

    def upsert(
        self, user_id: UUID, values: Mapping[str, Any]
    ) -> NotificationPreference:
        """Apply *values* to the user's row, creating it with defaults first.

        Column defaults fill whatever *values* leaves out on insert.
        """
        preference = self.get_by_user_id(user_id)
        if preference is None:
            preference = NotificationPreference(user_id=user_id, **values)
            self._session.add(preference)
        else:
            for field, value in values.items():
                setattr(preference, field, value)
        self._session.flush()
        return preference


class UnsubscribeTokenRepository:
    """Data access for unsubscribe tokens."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(
        self,
        token: str,
        user_id: UUID,
        scope: str,
        expires_at: datetime.datetime,
    ) -> UnsubscribeToken:
        record = UnsubscribeToken(
            token=token, user_id=user_id, scope=scope, expires_at=expires_at
        )
        self._session.add(record)
        self._session.flush()
        return record

    def get_active(
        self, token: str, now: datetime.datetime
    ) -> UnsubscribeToken | None:
        """Fetch a token that has not expired yet (used or not)."""
        stmt = select(UnsubscribeToken).where(
            UnsubscribeToken.token == token,
            UnsubscribeToken.expires_at > now,
        )
        return self._session.scalars(stmt).first()

    def mark_used(self, token: str, now: datetime.datetime) -> bool:
        """Set used_at only if it is still null.

        Returns False when another redemption got there first.
        """
        stmt = (
            update(UnsubscribeToken)
            .where(
                UnsubscribeToken.token == token,
                UnsubscribeToken.used_at.is_(None),
            )
            .values(used_at=now)
            .execution_options(synchronize_session="fetch")
        )
        result = self._session.execute(stmt)
        return result.rowcount == 1

    def get_latest_active_for_user(
        self, user_id: UUID, scope: str, now: datetime.datetime
    ) -> UnsubscribeToken | None:
        """Most recently issued unexpired token for a user and scope."""
        stmt = (
            select(UnsubscribeToken)
            .where(
                UnsubscribeToken.user_id == user_id,
                UnsubscribeToken.scope == scope,
                UnsubscribeToken.expires_at > now,
            )
            .order_by(UnsubscribeToken.created_at.desc(), UnsubscribeToken.expires_at.desc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()


class TemplateRepository:
    """Data access for the notification_templates table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, template: NotificationTemplate) -> NotificationTemplate:
        self._session.add(template)
        self._session.flush()
        return template

    def get_active(self, template_id: UUID) -> NotificationTemplate | None:
        """Fetch a template by id, ignoring deactivated ones."""
        stmt = select(NotificationTemplate).where(
            NotificationTemplate.id == template_id,
            NotificationTemplate.is_active.is_(True),
        )
        return self._session.scalars(stmt).first()


class NotificationLogRepository:
    """Data access for the notification_logs table."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, notification: NotificationLog) -> NotificationLog:
        """Add a new log row and flush to populate defaults."""
        self._session.add(notification)
        self._session.flush()
        return notification

    def get_by_id(self, notification_id: UUID) -> NotificationLog | None:
        return self._session.get(NotificationLog, notification_id)

    def get_for_update(self, notification_id: UUID) -> NotificationLog | None:
        """Fetch a row under ``SELECT ... FOR UPDATE``.

        Concurrent status writers for the same notification serialise on
        the row lock until the caller's transaction ends.
        """
        stmt = (
            select(NotificationLog)
            .where(NotificationLog.id == notification_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).first()

    def get_id_by_provider_id(self, provider_id: str) -> UUID | None:
        """Resolve a provider message id (Twilio SID, SendGrid id, ...)."""
        stmt = select(NotificationLog.id).where(
            NotificationLog.provider_id == provider_id
        )
        return self._session.scalars(stmt).first()

    def list_status_channels_for_user(
        self,
        user_id: UUID,
        date_from: datetime.datetime | None = None,
        date_to: datetime.datetime | None = None,
    ) -> list[tuple[str, str]]:
        """(status, channel) pairs for a user, optionally bounded by created_at."""
        stmt = select(NotificationLog.status, NotificationLog.channel).where(
            NotificationLog.user_id == user_id
        )
        if date_from is not None:
            stmt = stmt.where(NotificationLog.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(NotificationLog.created_at <= date_to)
        return [(status, channel) for status, channel in self._session.execute(stmt)]

    def list_statuses_for_campaign(self, campaign_id: str) -> list[str]:
        stmt = select(NotificationLog.status).where(
            NotificationLog.campaign_id == campaign_id
        )
        return list(self._session.scalars(stmt).all())
