"""Tests for PreferenceService: storage, caching, gating and unsubscribe tokens."""

import datetime
import uuid
from unittest.mock import MagicMock

import pytest
from cachetools import TTLCache
from pydantic import ValidationError
from sqlalchemy.orm import Session

from shared.db.models import NotificationPreference, UnsubscribeToken
from shared.db.repositories import PreferenceRepository
from shared.enums import Channel, EmailFrequency, UnsubscribeScope

from notification_service.config import NotificationServiceConfig
from notification_service.gate import PreferenceGate
from notification_service.preferences import PreferenceService, scope_changes
from notification_service.schemas import RedemptionOutcome, UserPreferences



class TestScopeChanges:
    def test_email(self) -> None:
        assert scope_changes("email", enabled=False) == {"email_enabled": False}

    def test_all_leaves_no_channel_out(self) -> None:
        assert scope_changes(UnsubscribeScope.ALL, enabled=True) == {
            "email_enabled": True,
            "sms_enabled": True,
            "push_enabled": True,
        }

    def test_unknown_scope_raises(self) -> None:
        with pytest.raises(ValueError):
            scope_changes("fax", enabled=False)


class TestGetPreferences:
    def test_defaults_when_no_row(
        self, preference_service: PreferenceService, db_session: Session
    ) -> None:
        user_id = uuid.uuid4()

        prefs = preference_service.get_preferences(user_id)

        assert prefs == UserPreferences(user_id=user_id)
        assert prefs.marketing_emails is False
        assert prefs.quiet_hours_start == "22:00"
        assert PreferenceRepository(db_session).get_by_user_id(user_id) is None

    def test_reads_stored_row(
        self, preference_service: PreferenceService, db_session: Session
    ) -> None:
        user_id = uuid.uuid4()
        db_session.add(
            NotificationPreference(
                user_id=user_id, sms_enabled=False, email_frequency="weekly"
            )
        )
        db_session.flush()

        prefs = preference_service.get_preferences(user_id)

        assert prefs.sms_enabled is False
        assert prefs.email_frequency is EmailFrequency.WEEKLY

    def test_second_read_served_from_cache(
        self, preference_service: PreferenceService, session_factory: MagicMock
    ) -> None:
        user_id = uuid.uuid4()
        first = preference_service.get_preferences(user_id)
        calls = session_factory.call_count

        second = preference_service.get_preferences(user_id)

        assert second is first
        assert session_factory.call_count == calls

    def test_expired_cache_entry_reloads(
        self,
        session_factory: MagicMock,
        gate: PreferenceGate,
        config: NotificationServiceConfig,
        clock,
    ) -> None:
        ticks = [0.0]
        cache = TTLCache(maxsize=10, ttl=300, timer=lambda: ticks[0])
        service = PreferenceService(session_factory, cache, gate, config, clock=clock)
        user_id = uuid.uuid4()

        service.get_preferences(user_id)
        ticks[0] = 301.0
        service.get_preferences(user_id)

        assert session_factory.call_count == 2


class TestUpdatePreferences:
    def test_creates_row_and_invalidates_cache(
        self, preference_service: PreferenceService, cache: TTLCache
    ) -> None:
        user_id = uuid.uuid4()
        preference_service.get_preferences(user_id)
        assert user_id in cache

        updated = preference_service.update_preferences(user_id, {"push_enabled": False})

        assert updated.push_enabled is False
        assert user_id not in cache
        assert preference_service.get_preferences(user_id).push_enabled is False

    def test_partial_update_keeps_other_fields(
        self, preference_service: PreferenceService
    ) -> None:
        user_id = uuid.uuid4()
        preference_service.update_preferences(user_id, {"timezone": "Europe/Paris"})

        updated = preference_service.update_preferences(
            user_id, {"email_frequency": "daily"}
        )

        assert updated.timezone == "Europe/Paris"
        assert updated.email_frequency is EmailFrequency.DAILY

    def test_identity_fields_ignored(self, preference_service: PreferenceService) -> None:
        user_id = uuid.uuid4()
        other = uuid.uuid4()

        updated = preference_service.update_preferences(
            user_id, {"user_id": str(other), "id": 7, "sms_enabled": False}
        )

        assert updated.user_id == user_id
        assert updated.sms_enabled is False

    def test_clock_values_normalised(self, preference_service: PreferenceService) -> None:
        updated = preference_service.update_preferences(
            uuid.uuid4(), {"quiet_hours_start": "7:30", "quiet_hours_end": "09:05"}
        )

        assert updated.quiet_hours_start == "07:30"
        assert updated.quiet_hours_end == "09:05"

    def test_empty_clock_disables_quiet_hours(
        self, preference_service: PreferenceService, clock
    ) -> None:
        user_id = uuid.uuid4()
        preference_service.update_preferences(user_id, {"quiet_hours_start": ""})
        clock.now = datetime.datetime(2026, 1, 15, 3, 0, tzinfo=datetime.UTC)

        assert preference_service.quiet_hours_status(user_id).is_quiet_hours is False

    @pytest.mark.parametrize(
        "payload",
        [
            {"quiet_hours_start": "25:00"},
            {"timezone": "Nowhere/Special"},
            {"email_frequency": "hourly"},
        ],
    )
    def test_invalid_input_rejected(
        self, preference_service: PreferenceService, payload: dict
    ) -> None:
        with pytest.raises(ValidationError):
            preference_service.update_preferences(uuid.uuid4(), payload)


class TestCheckNotificationAllowed:
    def test_uses_stored_preferences(self, preference_service: PreferenceService) -> None:
        user_id = uuid.uuid4()
        preference_service.update_preferences(user_id, {"email_enabled": False})

        decision = preference_service.check_notification_allowed(user_id, Channel.EMAIL)

        assert decision.allowed is False
        assert decision.reason == "Email notifications disabled"

    def test_store_failure_allows_degraded(
        self,
        session_factory: MagicMock,
        cache: TTLCache,
        gate: PreferenceGate,
        config: NotificationServiceConfig,
        clock,
    ) -> None:
        session_factory.side_effect = RuntimeError("database down")
        service = PreferenceService(session_factory, cache, gate, config, clock=clock)

        decision = service.check_notification_allowed(uuid.uuid4(), Channel.SMS)

        assert decision.allowed is True
        assert decision.degraded is True
        assert decision.reason

    def test_quiet_hours_deferred(
        self, preference_service: PreferenceService, clock
    ) -> None:
        clock.now = datetime.datetime(2026, 1, 15, 23, 0, tzinfo=datetime.UTC)

        decision = preference_service.check_notification_allowed(uuid.uuid4(), Channel.PUSH)

        assert decision.deferred is True
        assert decision.delay_ms == 9 * 60 * 60 * 1000


class TestQuietHoursStatus:
    def test_inside_window(
        self, preference_service: PreferenceService, clock
    ) -> None:
        clock.now = datetime.datetime(2026, 1, 15, 6, 30, tzinfo=datetime.UTC)

        status = preference_service.quiet_hours_status(uuid.uuid4())

        assert status.is_quiet_hours is True
        assert status.delay_until_active_ms == 90 * 60 * 1000
        assert status.delay_until_active_hours == 1.5

    def test_outside_window(self, preference_service: PreferenceService) -> None:
        status = preference_service.quiet_hours_status(uuid.uuid4())

        assert status.is_quiet_hours is False
        assert status.delay_until_active_ms == 0
        assert status.timezone == "UTC"


class TestUnsubscribeTokens:
    def test_create_token(
        self, preference_service: PreferenceService, clock
    ) -> None:
        issued = preference_service.create_unsubscribe_token(uuid.uuid4(), "sms")

        assert issued.scope is UnsubscribeScope.SMS
        assert issued.immediate is False
        assert issued.expires_at == clock.now + datetime.timedelta(days=365)
        assert issued.unsubscribe_url == (
            f"https://app.example.com/api/v1/unsubscribe/{issued.token}"
        )

    def test_redeem_disables_scope(
        self, preference_service: PreferenceService, cache: TTLCache
    ) -> None:
        user_id = uuid.uuid4()
        issued = preference_service.create_unsubscribe_token(user_id, "email")
        preference_service.get_preferences(user_id)

        result = preference_service.redeem_unsubscribe_token(issued.token)

        assert result.outcome is RedemptionOutcome.UNSUBSCRIBED
        assert result.user_id == user_id
        assert user_id not in cache
        prefs = preference_service.get_preferences(user_id)
        assert prefs.email_enabled is False
        assert prefs.sms_enabled is True

    def test_redeem_twice_is_terminal(self, preference_service: PreferenceService) -> None:
        user_id = uuid.uuid4()
        issued = preference_service.create_unsubscribe_token(user_id, "email")
        preference_service.redeem_unsubscribe_token(issued.token)
        preference_service.resubscribe(user_id, "email")

        second = preference_service.redeem_unsubscribe_token(issued.token)

        assert second.outcome is RedemptionOutcome.ALREADY_UNSUBSCRIBED
        assert preference_service.get_preferences(user_id).email_enabled is True

    def test_redeem_unknown_token(self, preference_service: PreferenceService) -> None:
        result = preference_service.redeem_unsubscribe_token("does-not-exist")
        assert result.outcome is RedemptionOutcome.INVALID
        assert result.user_id is None

    def test_redeem_expired_token(
        self, preference_service: PreferenceService, clock
    ) -> None:
        issued = preference_service.create_unsubscribe_token(uuid.uuid4(), "all")
        clock.now = clock.now + datetime.timedelta(days=366)

        result = preference_service.redeem_unsubscribe_token(issued.token)

        assert result.outcome is RedemptionOutcome.INVALID

    def test_immediate_unsubscribe(
        self, preference_service: PreferenceService, db_session: Session
    ) -> None:
        user_id = uuid.uuid4()

        issued = preference_service.create_unsubscribe_token(
            user_id, UnsubscribeScope.ALL, immediate=True
        )

        prefs = preference_service.get_preferences(user_id)
        assert not (prefs.email_enabled or prefs.sms_enabled or prefs.push_enabled)
        record = db_session.query(UnsubscribeToken).filter_by(token=issued.token).one()
        assert record.used_at is not None
        assert (
            preference_service.redeem_unsubscribe_token(issued.token).outcome
            is RedemptionOutcome.ALREADY_UNSUBSCRIBED
        )

    def test_check_unsubscribe_status(self, preference_service: PreferenceService) -> None:
        user_id = uuid.uuid4()
        assert preference_service.check_unsubscribe_status(user_id, "sms") is False

        issued = preference_service.create_unsubscribe_token(user_id, "sms")
        assert preference_service.check_unsubscribe_status(user_id, "sms") is False

        preference_service.redeem_unsubscribe_token(issued.token)
        assert preference_service.check_unsubscribe_status(user_id, "sms") is True
        assert preference_service.check_unsubscribe_status(user_id, "email") is False

    def test_resubscribe_reenables_scope(
        self, preference_service: PreferenceService
    ) -> None:
        user_id = uuid.uuid4()
        preference_service.create_unsubscribe_token(user_id, "all", immediate=True)

        prefs = preference_service.resubscribe(user_id, "sms")

        assert prefs.sms_enabled is True
        assert prefs.email_enabled is False
