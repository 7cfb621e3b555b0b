"""Provider status vocabularies mapped onto the canonical delivery lifecycle."""

import logging

from shared.enums import (
    FAILURE_STATUSES,
    PROVIDER_CHANNELS,
    Channel,
    DeliveryStatus,
    WebhookProvider,
)

logger = logging.getLogger(__name__)

_SMS_STATUSES: dict[str, DeliveryStatus] = {
    "queued": DeliveryStatus.QUEUED,
    "accepted": DeliveryStatus.QUEUED,
    "sending": DeliveryStatus.SENT,
    "sent": DeliveryStatus.SENT,
    "delivered": DeliveryStatus.DELIVERED,
    "failed": DeliveryStatus.FAILED,
    "undelivered": DeliveryStatus.FAILED,
}

_EMAIL_EVENTS: dict[str, DeliveryStatus] = {
    "delivered": DeliveryStatus.DELIVERED,
    "open": DeliveryStatus.OPENED,
    "click": DeliveryStatus.CLICKED,
    "bounce": DeliveryStatus.BOUNCED,
    "dropped": DeliveryStatus.BOUNCED,
}

_PUSH_STATUSES: dict[str, DeliveryStatus] = {
    s: DeliveryStatus(s)
    for s in (DeliveryStatus.SENT, DeliveryStatus.DELIVERED, DeliveryStatus.FAILED)
}

# Engagement order; failure states sit outside it.
_PROGRESSION: dict[str, int] = {
    DeliveryStatus.QUEUED: 0,
    DeliveryStatus.SENT: 1,
    DeliveryStatus.DELIVERED: 2,
    DeliveryStatus.OPENED: 3,
    DeliveryStatus.CLICKED: 4,
}


def resolve_channel(provider: str) -> Channel | None:
    """Accept either a channel name ("sms") or a vendor name ("twilio")."""
    key = provider.lower()
    try:
        return Channel(key)
    except ValueError:
        pass
    try:
        return PROVIDER_CHANNELS[WebhookProvider(key)]
    except ValueError:
        return None


def map_provider_status(provider: str, raw_status: str) -> DeliveryStatus | None:
    """Translate a provider's raw status into a canonical ``DeliveryStatus``.

    Returns None when the event carries no status change (an email event
    such as "processed", an unknown push status) or the provider is not
    recognised. Unknown SMS statuses map to ``sent``.

    Email "open"/"click" come back as ``opened``/``clicked``; callers route
    those through open/click tracking rather than a plain status write.
    """
    channel = resolve_channel(provider)
    if channel is None:
        logger.warning("Unknown webhook provider", extra={"provider": provider})
        return None

    status = (raw_status or "").strip().lower()
    if channel == Channel.SMS:
        return _SMS_STATUSES.get(status, DeliveryStatus.SENT)
    if channel == Channel.EMAIL:
        return _EMAIL_EVENTS.get(status)
    return _PUSH_STATUSES.get(status)


def is_regression(current: str, new: str) -> bool:
    """True if writing *new* over *current* would move the lifecycle backwards.

    Inside queued → sent → delivered → opened → clicked a lower stage never
    replaces a higher one. A failed or bounced record does not go back to
    queued or sent, and a failure never overwrites recorded engagement
    (opened or clicked). A late bounce after delivery is still accepted.
    """
    if current in FAILURE_STATUSES:
        return new in (DeliveryStatus.QUEUED, DeliveryStatus.SENT)
    if new in FAILURE_STATUSES:
        return current in (DeliveryStatus.OPENED, DeliveryStatus.CLICKED)
    current_rank = _PROGRESSION.get(current)
    new_rank = _PROGRESSION.get(new)
    if current_rank is None or new_rank is None:
        return False
    return new_rank < current_rank
