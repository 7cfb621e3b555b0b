"""SQLAlchemy ORM models for preferences, unsubscribe tokens, templates and delivery logs."""

import datetime
import uuid
from typing import Any

from sqlalchemy import Boolean, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from shared.db.base import Base
from shared.db.types import JSONBCompatible, UTCDateTime
from shared.enums import DeliveryStatus, EmailFrequency


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    email_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sms_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    push_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    marketing_emails: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    booking_notifications: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    payment_notifications: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    delivery_notifications: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    social_notifications: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    security_notifications: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    email_frequency: Mapped[str] = mapped_column(
        String(16), nullable=False, default=EmailFrequency.IMMEDIATE
    )
    # Local wall-clock "HH:MM"; null or equal values disable quiet hours.
    quiet_hours_start: Mapped[str | None] = mapped_column(
        String(5), nullable=True, default="22:00"
    )
    quiet_hours_end: Mapped[str | None] = mapped_column(
        String(5), nullable=True, default="08:00"
    )
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class UnsubscribeToken(Base):
    __tablename__ = "unsubscribe_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    scope: Mapped[str] = mapped_column(String(8), nullable=False)
    expires_at: Mapped[datetime.datetime] = mapped_column(UTCDateTime, nullable=False)
    used_at: Mapped[datetime.datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )


class NotificationTemplate(Base):
    __tablename__ = "notification_templates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    subject_template: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_template: Mapped[str] = mapped_column(Text, nullable=False)
    required_variables: Mapped[list[str]] = mapped_column(
        JSONBCompatible, nullable=False, default=list
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    template_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=DeliveryStatus.QUEUED, index=True
    )
    provider: Mapped[str | None] = mapped_column(String(32), nullable=True)
    provider_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, index=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    campaign_id: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )
    sent_at: Mapped[datetime.datetime | None] = mapped_column(UTCDateTime, nullable=True)
    delivered_at: Mapped[datetime.datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    opened_at: Mapped[datetime.datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    clicked_at: Mapped[datetime.datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    # "metadata" is reserved on declarative classes.
    meta: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSONBCompatible, nullable=False, default=dict
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime, nullable=False, server_default=func.now(), index=True
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
