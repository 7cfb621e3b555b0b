"""Preference storage, caching and unsubscribe token handling."""

import datetime
import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any
from uuid import UUID

from cachetools import TTLCache
from sqlalchemy.orm import Session, sessionmaker

from shared.db.repositories import PreferenceRepository, UnsubscribeTokenRepository
from shared.enums import Channel, NotificationCategory, UnsubscribeScope

from notification_service.config import NotificationServiceConfig
from notification_service.gate import GateDecision, PreferenceGate
from notification_service.schemas import (
    IssuedUnsubscribeToken,
    PreferencesUpdate,
    QuietHoursStatus,
    RedemptionOutcome,
    UnsubscribeRedemption,
    UserPreferences,
)

_SCOPE_CHANNEL_FIELDS: dict[UnsubscribeScope, tuple[str, ...]] = {
    UnsubscribeScope.EMAIL: ("email_enabled",),
    UnsubscribeScope.SMS: ("sms_enabled",),
    UnsubscribeScope.ALL: ("email_enabled", "sms_enabled", "push_enabled"),
}


def scope_changes(scope: UnsubscribeScope | str, enabled: bool) -> dict[str, bool]:
    """Preference fields flipped by (un)subscribing from *scope*."""
    return {field: enabled for field in _SCOPE_CHANNEL_FIELDS[UnsubscribeScope(scope)]}


def create_preference_cache(
    config: NotificationServiceConfig,
) -> TTLCache[UUID, UserPreferences]:
    return TTLCache(
        maxsize=config.preference_cache_max_size,
        ttl=config.preference_cache_ttl_seconds,
    )


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class PreferenceService:
    """Reads and writes user notification preferences.

    Reads go through a process-local TTL cache owned by the caller; every
    write drops the user's cache entry rather than refreshing it.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        cache: TTLCache[UUID, UserPreferences],
        gate: PreferenceGate,
        config: NotificationServiceConfig,
        clock: Callable[[], datetime.datetime] = _utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._gate = gate
        self._config = config
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)

    # -- preferences ---------------------------------------------------------

    def get_preferences(self, user_id: UUID) -> UserPreferences:
        """Cached preferences for *user_id*, defaults when no row exists.

        Defaults are cached but never persisted.
        """
        cached = self._cache.get(user_id)
        if cached is not None:
            return cached

        with self._session_factory() as session:
            row = PreferenceRepository(session).get_by_user_id(user_id)
            if row is None:
                preferences = UserPreferences(user_id=user_id)
            else:
                preferences = UserPreferences.model_validate(row)

        self._cache[user_id] = preferences
        return preferences

    def update_preferences(
        self,
        user_id: UUID,
        updates: PreferencesUpdate | Mapping[str, Any],
    ) -> UserPreferences:
        """Validate and upsert a partial update.

        Raises pydantic.ValidationError for invalid input.
        """
        if not isinstance(updates, PreferencesUpdate):
            updates = PreferencesUpdate.model_validate(updates)
        changes = updates.changes()

        with self._session_factory() as session:
            preferences = self._write(session, user_id, changes)
            session.commit()
        self.invalidate(user_id)

        self._logger.info(
            "User preferences updated",
            extra={"user_id": str(user_id), "changes": sorted(changes)},
        )
        return preferences

    def invalidate(self, user_id: UUID) -> None:
        self._cache.pop(user_id, None)

    def _write(
        self, session: Session, user_id: UUID, changes: Mapping[str, Any]
    ) -> UserPreferences:
        try:
            row = PreferenceRepository(session).upsert(user_id, changes)
        except Exception:
            self._logger.exception(
                "Failed to update user preferences", extra={"user_id": str(user_id)}
            )
            raise
        return UserPreferences.model_validate(row)

    # -- gating ----------------------------------------------------------------

    def check_notification_allowed(
        self,
        user_id: UUID,
        channel: Channel | str,
        category: str = NotificationCategory.GENERAL,
    ) -> GateDecision:
        """Gate a send against the user's stored preferences.

        When preferences cannot be resolved the send is allowed with
        ``degraded=True`` so callers can tell it apart from a real allow.
        """
        try:
            preferences = self.get_preferences(user_id)
            return self._gate.is_allowed(preferences, channel, category, self._clock())
        except Exception:
            self._logger.exception(
                "Error checking notification permission",
                extra={"user_id": str(user_id), "channel": str(channel)},
            )
            return GateDecision(
                allowed=True,
                reason="Preference check failed; allowing by default",
                degraded=True,
            )

    def quiet_hours_status(self, user_id: UUID) -> QuietHoursStatus:
        preferences = self.get_preferences(user_id)
        now = self._clock()
        quiet = self._gate.is_quiet_hours(preferences, now)
        delay_ms = self._gate.delay_until_active(preferences, now) if quiet else 0
        return QuietHoursStatus(
            is_quiet_hours=quiet,
            quiet_hours_start=preferences.quiet_hours_start,
            quiet_hours_end=preferences.quiet_hours_end,
            timezone=preferences.timezone,
            delay_until_active_ms=delay_ms,
            delay_until_active_hours=round(delay_ms / (60 * 60 * 1000), 2),
        )

    # -- unsubscribe -------------------------------------------------------------

    def unsubscribe_url(self, token: str) -> str:
        base = self._config.unsubscribe_base_url.rstrip("/")
        return f"{base}/api/v1/unsubscribe/{token}"

    def create_unsubscribe_token(
        self,
        user_id: UUID,
        scope: UnsubscribeScope | str = UnsubscribeScope.EMAIL,
        immediate: bool = False,
    ) -> IssuedUnsubscribeToken:
        """Issue a one-year unsubscribe token.

        With *immediate* the scope is disabled right away and the token is
        consumed in the same transaction.
        """
        scope = UnsubscribeScope(scope)
        now = self._clock()
        token = str(uuid.uuid4())
        expires_at = now + datetime.timedelta(days=self._config.unsubscribe_token_ttl_days)

        with self._session_factory() as session:
            tokens = UnsubscribeTokenRepository(session)
            tokens.create(token, user_id, scope, expires_at)
            if immediate:
                self._write(session, user_id, scope_changes(scope, enabled=False))
                tokens.mark_used(token, now)
            session.commit()
        if immediate:
            self.invalidate(user_id)

        self._logger.info(
            "Unsubscribe token generated",
            extra={"user_id": str(user_id), "scope": str(scope), "immediate": immediate},
        )
        return IssuedUnsubscribeToken(
            token=token,
            unsubscribe_url=self.unsubscribe_url(token),
            scope=scope,
            immediate=immediate,
            expires_at=expires_at,
        )

    def redeem_unsubscribe_token(self, token: str) -> UnsubscribeRedemption:
        """Consume a token from a public unsubscribe link.

        A used token is terminal: redeeming it again reports
        ``already_unsubscribed`` and leaves preferences untouched.
        """
        now = self._clock()
        with self._session_factory() as session:
            tokens = UnsubscribeTokenRepository(session)
            record = tokens.get_active(token, now)
            if record is None:
                self._logger.info("Invalid or expired unsubscribe token")
                return UnsubscribeRedemption(outcome=RedemptionOutcome.INVALID)

            user_id = record.user_id
            scope = UnsubscribeScope(record.scope)
            if record.used_at is not None or not tokens.mark_used(token, now):
                self._logger.info(
                    "Unsubscribe token already used",
                    extra={"user_id": str(user_id), "scope": str(scope)},
                )
                return UnsubscribeRedemption(
                    outcome=RedemptionOutcome.ALREADY_UNSUBSCRIBED,
                    user_id=user_id,
                    scope=scope,
                )

            self._write(session, user_id, scope_changes(scope, enabled=False))
            session.commit()
        self.invalidate(user_id)

        self._logger.info(
            "User unsubscribed via link",
            extra={"user_id": str(user_id), "scope": str(scope)},
        )
        return UnsubscribeRedemption(
            outcome=RedemptionOutcome.UNSUBSCRIBED, user_id=user_id, scope=scope
        )

    def resubscribe(
        self, user_id: UUID, scope: UnsubscribeScope | str = UnsubscribeScope.EMAIL
    ) -> UserPreferences:
        scope = UnsubscribeScope(scope)
        with self._session_factory() as session:
            preferences = self._write(session, user_id, scope_changes(scope, enabled=True))
            session.commit()
        self.invalidate(user_id)

        self._logger.info(
            "User resubscribed", extra={"user_id": str(user_id), "scope": str(scope)}
        )
        return preferences

    def check_unsubscribe_status(
        self, user_id: UUID, scope: UnsubscribeScope | str
    ) -> bool:
        """True when the latest unexpired token for *scope* has been used."""
        with self._session_factory() as session:
            record = UnsubscribeTokenRepository(session).get_latest_active_for_user(
                user_id, UnsubscribeScope(scope), self._clock()
            )
            return record is not None and record.used_at is not None
