"""Send dispatch: content rendering, preference gating, log rows and Celery hand-off."""

import logging
import uuid
from typing import Any
from uuid import UUID

from celery import Celery
from sqlalchemy.orm import Session, sessionmaker

from shared.db.models import NotificationLog, NotificationTemplate
from shared.db.repositories import NotificationLogRepository, TemplateRepository
from shared.enums import Channel, DeliveryStatus

from notification_service.config import CeleryConfig
from notification_service.errors import TemplateChannelMismatchError, TemplateNotFoundError
from notification_service.preferences import PreferenceService
from notification_service.renderer import (
    TemplateRenderError,
    missing_variables,
    render_template,
)
from notification_service.schemas import (
    BulkDispatchResult,
    BulkNotificationRequest,
    DispatchResult,
    DispatchStatus,
    NotificationRequest,
    SkippedRecipient,
)
from notification_service.tracking import add_email_tracking

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Turns an accepted send request into a queued log row and a Celery task.

    Delivery itself happens in whichever worker consumes
    ``CeleryConfig.send_task_name``. When ``tracking_base_url`` is set,
    email bodies get tracked links and an open pixel before they are stored.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        celery_app: Celery,
        preferences: PreferenceService,
        celery_config: CeleryConfig,
        tracking_base_url: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._celery = celery_app
        self._preferences = preferences
        self._task_name = celery_config.send_task_name
        self._tracking_base_url = tracking_base_url

    def dispatch(self, request: NotificationRequest) -> DispatchResult:
        """Render, gate, record and enqueue a single notification.

        Requests refused by preferences are not recorded. A quiet-hours
        refusal is recorded and enqueued with a countdown instead.

        Raises:
            TemplateNotFoundError: ``template_id`` is unknown or inactive.
            TemplateChannelMismatchError: the template is for another channel.
            TemplateRenderError: the content does not parse or lacks variables.
        """
        template = self._load_template(request.template_id, request.channel)
        return self._dispatch(request, template)

    def dispatch_bulk(self, request: BulkNotificationRequest) -> BulkDispatchResult:
        """Send one message to many recipients, each gated on their own preferences.

        Recipients refused by preferences, or whose variables do not render
        the content, are skipped with a reason. Template lookup errors abort
        the whole batch before anything is queued.
        """
        template = self._load_template(request.template_id, request.channel)

        notification_ids: list[UUID] = []
        skipped: list[SkippedRecipient] = []
        for recipient in request.recipients:
            try:
                result = self._dispatch(request.for_recipient(recipient), template)
            except TemplateRenderError as exc:
                reason: str | None = str(exc)
            else:
                if result.status is DispatchStatus.QUEUED:
                    notification_ids.append(result.notification_id)
                    continue
                reason = result.reason
            skipped.append(
                SkippedRecipient(
                    user_id=recipient.user_id,
                    recipient=recipient.recipient,
                    reason=reason,
                )
            )

        logger.info(
            "Bulk notification dispatched",
            extra={
                "channel": str(request.channel),
                "campaign_id": request.campaign_id,
                "total_recipients": len(request.recipients),
                "queued": len(notification_ids),
                "skipped": len(skipped),
            },
        )
        return BulkDispatchResult(
            queued=len(notification_ids),
            skipped=len(skipped),
            notification_ids=notification_ids,
            skipped_recipients=skipped,
        )

    def _load_template(
        self, template_id: UUID | None, channel: Channel
    ) -> NotificationTemplate | None:
        if template_id is None:
            return None
        with self._session_factory() as session:
            template = TemplateRepository(session).get_active(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)
        if template.channel != channel:
            raise TemplateChannelMismatchError(template_id, template.channel, channel)
        return template

    @staticmethod
    def _render(
        request: NotificationRequest, template: NotificationTemplate | None
    ) -> tuple[str | None, str]:
        subject_src = request.subject
        body_src = request.body
        required: list[str] = []
        if template is not None:
            subject_src = subject_src or template.subject_template
            body_src = body_src or template.body_template
            required = template.required_variables

        missing = missing_variables(
            request.variables, subject_src, body_src, required=required
        )
        if missing:
            raise TemplateRenderError(f"Missing template variables: {', '.join(missing)}")

        subject = None
        if subject_src:
            subject = render_template(subject_src, request.variables, autoescape=False)
        body = render_template(
            body_src,
            request.variables,
            autoescape=request.channel == Channel.EMAIL,
        )
        return subject, body

    def _dispatch(
        self, request: NotificationRequest, template: NotificationTemplate | None
    ) -> DispatchResult:
        log_ctx = {
            "user_id": str(request.user_id),
            "channel": str(request.channel),
            "category": request.category,
        }

        subject, body = self._render(request, template)

        decision = self._preferences.check_notification_allowed(
            request.user_id, request.channel, request.category
        )
        if not decision.allowed and not decision.deferred:
            logger.info(
                "Notification blocked by user preference",
                extra={**log_ctx, "reason": decision.reason},
            )
            return DispatchResult(status=DispatchStatus.REJECTED, reason=decision.reason)
        if decision.degraded:
            logger.warning("Dispatching without preference check", extra=log_ctx)

        metadata: dict[str, Any] = {**request.metadata, "category": request.category}
        if request.campaign_id is not None:
            metadata["campaign_id"] = request.campaign_id

        notification_id = uuid.uuid4()
        if request.channel == Channel.EMAIL and self._tracking_base_url:
            body = add_email_tracking(body, notification_id, self._tracking_base_url)

        with self._session_factory() as session:
            NotificationLogRepository(session).create(
                NotificationLog(
                    id=notification_id,
                    user_id=request.user_id,
                    channel=request.channel,
                    recipient=request.recipient,
                    template_id=request.template_id,
                    subject=subject,
                    body=body,
                    status=DeliveryStatus.QUEUED,
                    campaign_id=request.campaign_id,
                    meta=metadata,
                )
            )
            session.commit()

        celery_kwargs: dict[str, Any] = {"queue": str(request.channel)}
        if decision.deferred and decision.delay_ms > 0:
            celery_kwargs["countdown"] = decision.delay_ms / 1000
            logger.info(
                "Deferred delivery due to quiet hours",
                extra={**log_ctx, "delay_ms": decision.delay_ms},
            )

        self._celery.send_task(
            self._task_name,
            kwargs={"notification_id": str(notification_id)},
            **celery_kwargs,
        )

        logger.info(
            "Notification queued",
            extra={**log_ctx, "notification_id": str(notification_id)},
        )
        return DispatchResult(
            status=DispatchStatus.QUEUED,
            notification_id=notification_id,
            reason=decision.reason,
            delay_ms=decision.delay_ms if decision.deferred else 0,
        )
