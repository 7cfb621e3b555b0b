"""Analytics sinks for delivery lifecycle events."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import UUID

from confluent_kafka import KafkaError, Message, Producer

from shared.config import KafkaConfig

logger = logging.getLogger(__name__)


class AnalyticsSink(Protocol):
    def track(
        self,
        event: str,
        notification_id: UUID,
        metadata: dict[str, Any] | None = None,
    ) -> None: ...

    def close(self) -> None: ...


class KafkaAnalyticsPublisher:
    """Publishes analytics events to the notification.analytics topic.

    Fire-and-forget: ``track`` only enqueues into the producer buffer and
    delivery errors are logged from the delivery callback.
    """

    def __init__(self, config: KafkaConfig) -> None:
        self._topic = config.analytics_topic
        self._producer = Producer({
            "bootstrap.servers": config.bootstrap_servers,
            "acks": "all",
            "enable.idempotence": True,
            "linger.ms": 5,
            "compression.type": "lz4",
        })

    def track(
        self,
        event: str,
        notification_id: UUID,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        value = json.dumps(
            {
                "event": event,
                "notification_id": str(notification_id),
                "metadata": metadata or {},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
            default=str,
        ).encode("utf-8")

        self._producer.produce(
            topic=self._topic,
            key=str(notification_id).encode("utf-8"),
            value=value,
            on_delivery=self._on_delivery,
        )
        self._producer.poll(0)

    def flush(self, timeout: float = 10.0) -> int:
        """Flush buffered events. Returns the number still unflushed."""
        return self._producer.flush(timeout=timeout)

    def close(self) -> None:
        remaining = self.flush()
        if remaining > 0:
            logger.warning(
                "Analytics producer closed with unflushed events",
                extra={"remaining": remaining},
            )

    @staticmethod
    def _on_delivery(err: KafkaError | None, msg: Message) -> None:
        if err is not None:
            logger.error("Analytics event delivery failed: %s", err)


class LoggingAnalyticsSink:
    """Writes analytics events to the log; used when Kafka is disabled."""

    def track(
        self,
        event: str,
        notification_id: UUID,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        logger.info(
            "Analytics event tracked",
            extra={
                "event": event,
                "notification_id": str(notification_id),
                "analytics_metadata": metadata or {},
            },
        )

    def close(self) -> None:
        pass
