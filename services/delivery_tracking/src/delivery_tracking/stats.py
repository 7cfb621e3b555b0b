"""Delivery statistics derived from notification statuses.

A later engagement state implies every earlier one: a clicked
notification also counts as opened, delivered and sent. Failed and
bounced notifications count only as failed.
"""

from collections.abc import Iterable
from dataclasses import asdict, dataclass, field

from shared.enums import FAILURE_STATUSES, DeliveryStatus

_SENT_OR_LATER = frozenset({
    DeliveryStatus.SENT,
    DeliveryStatus.DELIVERED,
    DeliveryStatus.OPENED,
    DeliveryStatus.CLICKED,
})
_DELIVERED_OR_LATER = frozenset({
    DeliveryStatus.DELIVERED,
    DeliveryStatus.OPENED,
    DeliveryStatus.CLICKED,
})
_OPENED_OR_LATER = frozenset({DeliveryStatus.OPENED, DeliveryStatus.CLICKED})


@dataclass(slots=True)
class DeliveryCounts:
    total: int = 0
    sent: int = 0
    delivered: int = 0
    opened: int = 0
    clicked: int = 0
    failed: int = 0

    def add(self, status: str) -> None:
        self.total += 1
        if status in _SENT_OR_LATER:
            self.sent += 1
        if status in _DELIVERED_OR_LATER:
            self.delivered += 1
        if status in _OPENED_OR_LATER:
            self.opened += 1
        if status == DeliveryStatus.CLICKED:
            self.clicked += 1
        if status in FAILURE_STATUSES:
            self.failed += 1


@dataclass(slots=True)
class UserDeliveryStats(DeliveryCounts):
    by_channel: dict[str, DeliveryCounts] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class CampaignDeliveryStats:
    total_recipients: int
    sent_count: int
    delivered_count: int
    opened_count: int
    clicked_count: int
    failed_count: int
    delivery_rate: float
    open_rate: float
    click_rate: float

    def to_dict(self) -> dict:
        return asdict(self)


def _percent(numerator: int, denominator: int) -> float:
    return numerator / denominator * 100 if denominator else 0.0


def aggregate_user_stats(rows: Iterable[tuple[str, str | None]]) -> UserDeliveryStats:
    """Single pass over (status, channel) pairs."""
    stats = UserDeliveryStats()
    for status, channel in rows:
        stats.add(status)
        stats.by_channel.setdefault(channel or "unknown", DeliveryCounts()).add(status)
    return stats


def aggregate_campaign_stats(statuses: Iterable[str]) -> CampaignDeliveryStats:
    counts = DeliveryCounts()
    for status in statuses:
        counts.add(status)

    return CampaignDeliveryStats(
        total_recipients=counts.total,
        sent_count=counts.sent,
        delivered_count=counts.delivered,
        opened_count=counts.opened,
        clicked_count=counts.clicked,
        failed_count=counts.failed,
        delivery_rate=_percent(counts.delivered, counts.total),
        open_rate=_percent(counts.opened, counts.delivered),
        click_rate=_percent(counts.clicked, counts.opened),
    )
