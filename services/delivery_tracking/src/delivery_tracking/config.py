from pydantic_settings import BaseSettings, SettingsConfigDict


class CeleryConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CELERY_")

    broker_url: str = "redis://localhost:6379/0"
    send_task_name: str = "notifications.send"


class DeliveryTrackingConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DELIVERY_TRACKING_")

    log_level: str = "INFO"
    analytics_enabled: bool = True
