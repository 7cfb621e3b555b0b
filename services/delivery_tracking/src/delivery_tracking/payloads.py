"""Typed provider webhook bodies, one model per provider."""

import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.enums import WebhookProvider

logger = logging.getLogger(__name__)


class TwilioWebhook(BaseModel):
    """Twilio SMS status callback (form fields, CamelCase)."""

    model_config = ConfigDict(
        populate_by_name=True, extra="ignore", coerce_numbers_to_str=True
    )

    provider: Literal[WebhookProvider.TWILIO] = WebhookProvider.TWILIO
    message_sid: str | None = Field(default=None, alias="MessageSid")
    message_status: str = Field(default="", alias="MessageStatus")
    error_code: str | None = Field(default=None, alias="ErrorCode")
    error_message: str | None = Field(default=None, alias="ErrorMessage")

    @classmethod
    def from_raw(cls, raw: Any) -> "TwilioWebhook":
        return cls.model_validate(raw)


class SendGridEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sg_message_id: str
    event: str
    url: str | None = None
    timestamp: int | None = None


class SendGridWebhook(BaseModel):
    """SendGrid event webhook: a JSON array of events.

    Elements that fail validation are dropped on their own so one bad
    event cannot sink the rest of the batch.
    """

    provider: Literal[WebhookProvider.SENDGRID] = WebhookProvider.SENDGRID
    events: list[SendGridEvent] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, raw: Any) -> "SendGridWebhook":
        if not isinstance(raw, list):
            raise ValueError("SendGrid webhook body must be an array of events")

        events: list[SendGridEvent] = []
        for index, item in enumerate(raw):
            try:
                events.append(SendGridEvent.model_validate(item))
            except ValidationError:
                logger.warning(
                    "Skipping malformed SendGrid event", extra={"index": index}
                )
        return cls(events=events)


class FirebaseWebhook(BaseModel):
    """Push delivery report; the status is already canonical."""

    model_config = ConfigDict(extra="allow")

    provider: Literal[WebhookProvider.FIREBASE] = WebhookProvider.FIREBASE
    message_id: str | None = None
    status: str = ""
    error: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> "FirebaseWebhook":
        return cls.model_validate(raw)


AnyWebhook = TwilioWebhook | SendGridWebhook | FirebaseWebhook

_WEBHOOK_REGISTRY: dict[str, type[TwilioWebhook | SendGridWebhook | FirebaseWebhook]] = {
    WebhookProvider.TWILIO: TwilioWebhook,
    WebhookProvider.SENDGRID: SendGridWebhook,
    WebhookProvider.FIREBASE: FirebaseWebhook,
}


def parse_webhook(provider: str, raw: Any) -> AnyWebhook:
    """Validate a raw webhook body into the provider's typed model.

    Raises ValueError for an unknown provider or a body of the wrong shape
    (pydantic.ValidationError is a ValueError subclass).
    """
    webhook_cls = _WEBHOOK_REGISTRY.get(provider.lower())
    if webhook_cls is None:
        raise ValueError(f"Unknown webhook provider: {provider!r}")
    return webhook_cls.from_raw(raw)
