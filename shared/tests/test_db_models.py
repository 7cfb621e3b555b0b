"""Tests for ORM model defaults and column types."""

import datetime
import uuid

from sqlalchemy.orm import Session

from shared.db.models import NotificationLog, NotificationPreference, UnsubscribeToken
from shared.enums import DeliveryStatus, EmailFrequency


class TestNotificationPreference:
    def test_defaults_on_insert(self, db_session: Session) -> None:
        pref = NotificationPreference(user_id=uuid.uuid4())
        db_session.add(pref)
        db_session.flush()

        assert pref.email_enabled is True
        assert pref.sms_enabled is True
        assert pref.push_enabled is True
        assert pref.marketing_emails is False
        assert pref.security_notifications is True
        assert pref.email_frequency == EmailFrequency.IMMEDIATE
        assert pref.quiet_hours_start == "22:00"
        assert pref.quiet_hours_end == "08:00"
        assert pref.timezone == "UTC"


class TestNotificationLog:
    def test_defaults_on_insert(self, db_session: Session) -> None:
        log = NotificationLog(user_id=uuid.uuid4(), channel="email", recipient="a@b.c")
        db_session.add(log)
        db_session.flush()

        assert isinstance(log.id, uuid.UUID)
        assert log.status == DeliveryStatus.QUEUED
        assert log.meta == {}
        assert log.sent_at is None

    def test_metadata_round_trips_as_json(self, db_session: Session) -> None:
        log = NotificationLog(
            user_id=uuid.uuid4(),
            channel="sms",
            recipient="+15550001111",
            meta={"campaign_id": "spring", "tags": ["a", "b"]},
        )
        db_session.add(log)
        db_session.flush()
        db_session.expire(log)

        assert log.meta == {"campaign_id": "spring", "tags": ["a", "b"]}

    def test_timestamps_load_as_aware_utc(self, db_session: Session) -> None:
        sent = datetime.datetime(2026, 3, 1, 12, 30, tzinfo=datetime.UTC)
        log = NotificationLog(
            user_id=uuid.uuid4(), channel="push", recipient="device", sent_at=sent
        )
        db_session.add(log)
        db_session.flush()
        db_session.expire(log)

        assert log.sent_at == sent
        assert log.sent_at.tzinfo is not None

    def test_created_at_populated_by_server(self, db_session: Session) -> None:
        log = NotificationLog(user_id=uuid.uuid4(), channel="email", recipient="x@y.z")
        db_session.add(log)
        db_session.flush()
        db_session.refresh(log)

        assert log.created_at is not None


class TestUnsubscribeToken:
    def test_non_utc_expiry_is_normalised(self, db_session: Session) -> None:
        plus_two = datetime.timezone(datetime.timedelta(hours=2))
        token = UnsubscribeToken(
            token="t-1",
            user_id=uuid.uuid4(),
            scope="email",
            expires_at=datetime.datetime(2027, 1, 1, 2, 0, tzinfo=plus_two),
        )
        db_session.add(token)
        db_session.flush()
        db_session.expire(token)

        assert token.expires_at == datetime.datetime(2027, 1, 1, 0, 0, tzinfo=datetime.UTC)
        assert token.used_at is None
