"""Pydantic models for preferences, unsubscribe tokens and dispatch requests."""

import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.enums import Channel, EmailFrequency, UnsubscribeScope

from notification_service.quiet_hours import format_clock, parse_clock


class UserPreferences(BaseModel):
    """Resolved preferences for one user; field defaults are the fallbacks."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    email_enabled: bool = True
    sms_enabled: bool = True
    push_enabled: bool = True
    marketing_emails: bool = False
    booking_notifications: bool = True
    payment_notifications: bool = True
    delivery_notifications: bool = True
    social_notifications: bool = True
    security_notifications: bool = True
    email_frequency: EmailFrequency = EmailFrequency.IMMEDIATE
    quiet_hours_start: str | None = "22:00"
    quiet_hours_end: str | None = "08:00"
    timezone: str = "UTC"


class PreferencesUpdate(BaseModel):
    """Partial preference update.

    Identity and audit fields (id, user_id, created_at, updated_at) are
    silently dropped.
    """

    model_config = ConfigDict(extra="ignore")

    email_enabled: bool | None = None
    sms_enabled: bool | None = None
    push_enabled: bool | None = None
    marketing_emails: bool | None = None
    booking_notifications: bool | None = None
    payment_notifications: bool | None = None
    delivery_notifications: bool | None = None
    social_notifications: bool | None = None
    security_notifications: bool | None = None
    email_frequency: EmailFrequency | None = None
    quiet_hours_start: str | None = None
    quiet_hours_end: str | None = None
    timezone: str | None = None

    @field_validator("quiet_hours_start", "quiet_hours_end")
    @classmethod
    def _normalise_clock(cls, value: str | None) -> str | None:
        if value is None:
            return None
        minutes = parse_clock(value)
        return "" if minutes is None else format_clock(minutes)

    @field_validator("timezone")
    @classmethod
    def _check_timezone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ValueError(f"Invalid timezone: {value!r}") from exc
        return value

    def changes(self) -> dict[str, Any]:
        """Only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True, mode="json")


class QuietHoursStatus(BaseModel):
    is_quiet_hours: bool
    quiet_hours_start: str | None
    quiet_hours_end: str | None
    timezone: str
    delay_until_active_ms: int
    delay_until_active_hours: float


class IssuedUnsubscribeToken(BaseModel):
    token: str
    unsubscribe_url: str
    scope: UnsubscribeScope
    immediate: bool
    expires_at: datetime.datetime


class RedemptionOutcome(StrEnum):
    UNSUBSCRIBED = "unsubscribed"
    ALREADY_UNSUBSCRIBED = "already_unsubscribed"
    INVALID = "invalid"


class UnsubscribeRedemption(BaseModel):
    outcome: RedemptionOutcome
    user_id: UUID | None = None
    scope: UnsubscribeScope | None = None


class NotificationRequest(BaseModel):
    """One send. ``subject`` and ``body`` are Jinja2 templates over ``variables``.

    With a ``template_id`` the stored template fills in whichever of subject
    and body the request leaves empty.
    """

    user_id: UUID
    channel: Channel
    recipient: str = Field(min_length=1)
    category: str = "general"
    subject: str | None = None
    body: str = ""
    template_id: UUID | None = None
    variables: dict[str, Any] = Field(default_factory=dict)
    campaign_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_content(self) -> "NotificationRequest":
        if self.template_id is None and not self.body:
            raise ValueError("Either template_id or body must be provided")
        return self


class DispatchStatus(StrEnum):
    QUEUED = "queued"
    REJECTED = "rejected"


class DispatchResult(BaseModel):
    status: DispatchStatus
    notification_id: UUID | None = None
    reason: str | None = None
    delay_ms: int = 0


class BulkRecipient(BaseModel):
    user_id: UUID
    recipient: str = Field(min_length=1)
    variables: dict[str, Any] = Field(default_factory=dict)


class BulkNotificationRequest(BaseModel):
    """The same message to many recipients.

    Per-recipient ``variables`` override ``global_variables``.
    """

    channel: Channel
    recipients: list[BulkRecipient] = Field(min_length=1, max_length=10_000)
    category: str = "general"
    subject: str | None = None
    body: str = ""
    template_id: UUID | None = None
    global_variables: dict[str, Any] = Field(default_factory=dict)
    campaign_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_content(self) -> "BulkNotificationRequest":
        if self.template_id is None and not self.body:
            raise ValueError("Either template_id or body must be provided")
        return self

    def for_recipient(self, recipient: BulkRecipient) -> NotificationRequest:
        return NotificationRequest(
            user_id=recipient.user_id,
            channel=self.channel,
            recipient=recipient.recipient,
            category=self.category,
            subject=self.subject,
            body=self.body,
            template_id=self.template_id,
            variables={**self.global_variables, **recipient.variables},
            campaign_id=self.campaign_id,
            metadata=self.metadata,
        )


class SkippedRecipient(BaseModel):
    user_id: UUID
    recipient: str
    reason: str | None = None


class BulkDispatchResult(BaseModel):
    queued: int
    skipped: int
    notification_ids: list[UUID] = Field(default_factory=list)
    skipped_recipients: list[SkippedRecipient] = Field(default_factory=list)
