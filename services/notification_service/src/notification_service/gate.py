"""Send-time gating against a user's notification preferences."""

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass

from shared.enums import Channel, EmailFrequency, NotificationCategory

from notification_service.quiet_hours import delay_until_end, is_quiet
from notification_service.schemas import UserPreferences

_CHANNEL_SWITCHES: dict[Channel, tuple[str, str]] = {
    Channel.EMAIL: ("email_enabled", "Email notifications disabled"),
    Channel.SMS: ("sms_enabled", "SMS notifications disabled"),
    Channel.PUSH: ("push_enabled", "Push notifications disabled"),
}

_CATEGORY_SWITCHES: dict[str, str] = {
    NotificationCategory.MARKETING: "marketing_emails",
    NotificationCategory.BOOKING: "booking_notifications",
    NotificationCategory.PAYMENT: "payment_notifications",
    NotificationCategory.DELIVERY: "delivery_notifications",
    NotificationCategory.SOCIAL: "social_notifications",
    NotificationCategory.SECURITY: "security_notifications",
}

_DAY_MS = 24 * 60 * 60 * 1000

_FREQUENCY_DELAYS_MS: dict[str, int] = {
    EmailFrequency.IMMEDIATE: 0,
    EmailFrequency.DAILY: _DAY_MS,
    EmailFrequency.WEEKLY: 7 * _DAY_MS,
    EmailFrequency.NEVER: -1,
}

QUIET_HOURS_REASON = "Currently in quiet hours"


@dataclass(frozen=True, slots=True)
class GateDecision:
    """Outcome of a preference check.

    ``deferred`` marks a quiet-hours refusal that becomes allowed after
    ``delay_ms``. ``degraded`` marks an allow issued because the
    preferences could not be resolved.
    """

    allowed: bool
    reason: str | None = None
    deferred: bool = False
    delay_ms: int = 0
    degraded: bool = False


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class PreferenceGate:
    """Stateless decisions over a resolved ``UserPreferences``."""

    def __init__(
        self,
        clock: Callable[[], datetime.datetime] = _utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    def is_allowed(
        self,
        prefs: UserPreferences,
        channel: Channel | str,
        category: str = NotificationCategory.GENERAL,
        now: datetime.datetime | None = None,
    ) -> GateDecision:
        """Run the checks in order; the first failing one sets the reason.

        Raises ValueError for a channel outside email/sms/push.
        """
        try:
            field, disabled_reason = _CHANNEL_SWITCHES[Channel(channel)]
        except ValueError:
            raise ValueError(f"Unknown channel: {channel!r}") from None
        if not getattr(prefs, field):
            return GateDecision(allowed=False, reason=disabled_reason)

        if not self.category_allowed(prefs, category):
            return GateDecision(
                allowed=False, reason=f"{category} notifications disabled"
            )

        if channel == Channel.EMAIL and prefs.email_frequency == EmailFrequency.NEVER:
            return GateDecision(allowed=False, reason="Email frequency set to never")

        now = now or self._clock()
        if self.is_quiet_hours(prefs, now):
            return GateDecision(
                allowed=False,
                reason=QUIET_HOURS_REASON,
                deferred=True,
                delay_ms=self.delay_until_active(prefs, now),
            )

        return GateDecision(allowed=True)

    @staticmethod
    def category_allowed(prefs: UserPreferences, category: str) -> bool:
        # Unrecognised categories ride on the channel switch alone.
        field = _CATEGORY_SWITCHES.get(category.lower())
        return True if field is None else bool(getattr(prefs, field))

    def is_quiet_hours(
        self, prefs: UserPreferences, now: datetime.datetime | None = None
    ) -> bool:
        """True while the user's local time sits inside the quiet window.

        Errors (unknown timezone, malformed stored times) are logged and
        read as "not quiet" so that delivery is not silently blocked.
        """
        try:
            return is_quiet(
                prefs.quiet_hours_start,
                prefs.quiet_hours_end,
                prefs.timezone,
                now or self._clock(),
            )
        except Exception:
            self._logger.exception(
                "Error checking quiet hours",
                extra={"user_id": str(prefs.user_id), "timezone": prefs.timezone},
            )
            return False

    def delay_until_active(
        self, prefs: UserPreferences, now: datetime.datetime | None = None
    ) -> int:
        """Milliseconds until quiet hours end; 0 when unset or on error."""
        try:
            delay = delay_until_end(
                prefs.quiet_hours_end, prefs.timezone, now or self._clock()
            )
        except Exception:
            self._logger.exception(
                "Error calculating delay until active hours",
                extra={"user_id": str(prefs.user_id), "timezone": prefs.timezone},
            )
            return 0
        return int(delay.total_seconds() * 1000)

    @staticmethod
    def category_frequency_delay(frequency: str) -> int:
        """Batching delay for an email frequency; -1 means never send."""
        return _FREQUENCY_DELAYS_MS.get(frequency, 0)
