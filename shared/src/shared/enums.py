from enum import StrEnum


class Channel(StrEnum):
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class DeliveryStatus(StrEnum):
    QUEUED = "queued"
    SENT = "sent"
    DELIVERED = "delivered"
    OPENED = "opened"
    CLICKED = "clicked"
    FAILED = "failed"
    BOUNCED = "bounced"


FAILURE_STATUSES: frozenset[DeliveryStatus] = frozenset(
    {DeliveryStatus.FAILED, DeliveryStatus.BOUNCED}
)


class EmailFrequency(StrEnum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"
    NEVER = "never"


class NotificationCategory(StrEnum):
    GENERAL = "general"
    MARKETING = "marketing"
    BOOKING = "booking"
    PAYMENT = "payment"
    DELIVERY = "delivery"
    SOCIAL = "social"
    SECURITY = "security"


class UnsubscribeScope(StrEnum):
    EMAIL = "email"
    SMS = "sms"
    ALL = "all"


class WebhookProvider(StrEnum):
    TWILIO = "twilio"
    SENDGRID = "sendgrid"
    FIREBASE = "firebase"


PROVIDER_CHANNELS: dict[WebhookProvider, Channel] = {
    WebhookProvider.TWILIO: Channel.SMS,
    WebhookProvider.SENDGRID: Channel.EMAIL,
    WebhookProvider.FIREBASE: Channel.PUSH,
}
