"""Database layer: models, repositories, engine/session utilities."""

from shared.db.base import Base, create_db_engine, create_session_factory
from shared.db.models import (
    NotificationLog,
    NotificationPreference,
    NotificationTemplate,
    UnsubscribeToken,
)
from shared.db.repositories import (
    NotificationLogRepository,
    PreferenceRepository,
    TemplateRepository,
    UnsubscribeTokenRepository,
)

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "NotificationLog",
    "NotificationPreference",
    "NotificationTemplate",
    "UnsubscribeToken",
    "NotificationLogRepository",
    "PreferenceRepository",
    "TemplateRepository",
    "UnsubscribeTokenRepository",
]
