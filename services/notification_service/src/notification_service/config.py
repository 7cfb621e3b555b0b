from pydantic_settings import BaseSettings, SettingsConfigDict


class NotificationServiceConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="NOTIFICATION_SERVICE_")

    log_level: str = "INFO"
    preference_cache_ttl_seconds: int = 300
    preference_cache_max_size: int = 10_000
    unsubscribe_base_url: str = "http://localhost:3000"
    unsubscribe_token_ttl_days: int = 365
    tracking_base_url: str = "http://localhost:3000"
    email_tracking_enabled: bool = True


class CeleryConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CELERY_")

    broker_url: str = "redis://localhost:6379/0"
    send_task_name: str = "notifications.send"
