from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import math
import random
from typing import Any, Optional

from crm.db.enums import CampaignStatusEnum
from crm.db.models import Campaign
from crm.errors import CampaignStateError

# Campaigns created against an empty segment still simulate a send of this size.
FALLBACK_AUDIENCE_SIZE = 1000

DELIVERY_RATE_RANGE = (0.85, 0.95)
OPEN_RATE_RANGE = (0.15, 0.40)
CLICK_RATE_RANGE = (0.02, 0.10)
UNSUBSCRIBE_RATE = 0.001
BOUNCE_RATE = 0.02

SENDABLE_STATUSES = {CampaignStatusEnum.draft, CampaignStatusEnum.scheduled}
LOCKED_STATUSES = {CampaignStatusEnum.sending, CampaignStatusEnum.completed}
METRIC_FIELDS = ("sent", "delivered", "failed", "opened", "clicked", "unsubscribed", "bounced")


@dataclass(frozen=True)
class DeliveryMetrics:
    sent: int
    delivered: int
    failed: int
    opened: int
    clicked: int
    unsubscribed: int
    bounced: int


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _uniform(rng, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return low + rng.random() * (high - low)


def simulate_delivery_metrics(audience_size: int, rng: Optional[random.Random] = None) -> DeliveryMetrics:
    source = rng or random
    sent = audience_size if audience_size > 0 else FALLBACK_AUDIENCE_SIZE
    delivered = math.floor(sent * _uniform(source, DELIVERY_RATE_RANGE))
    opened = math.floor(delivered * _uniform(source, OPEN_RATE_RANGE))
    clicked = math.floor(opened * _uniform(source, CLICK_RATE_RANGE))
    return DeliveryMetrics(
        sent=sent,
        delivered=delivered,
        failed=sent - delivered,
        opened=opened,
        clicked=clicked,
        unsubscribed=math.floor(opened * UNSUBSCRIBE_RATE),
        bounced=math.floor(sent * BOUNCE_RATE),
    )


def percentage(numerator: int, denominator: int) -> float:
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 1)


def compute_rates(campaign: Campaign) -> dict[str, float]:
    return {
        "deliveryRate": percentage(campaign.delivered, campaign.sent),
        "openRate": percentage(campaign.opened, campaign.delivered),
        "clickRate": percentage(campaign.clicked, campaign.opened),
    }


def ensure_editable(campaign: Campaign, action: str = "edit") -> None:
    if campaign.status in LOCKED_STATUSES:
        raise CampaignStateError(f"Cannot {action} campaign that is sending or completed")


def mark_scheduled(campaign: Campaign, send_at: Optional[datetime], now: Optional[datetime] = None) -> Campaign:
    if campaign.status != CampaignStatusEnum.draft:
        raise CampaignStateError("Only draft campaigns can be scheduled")
    now = now or datetime.now(timezone.utc)
    target = as_utc(send_at or campaign.send_at)
    if target is None:
        raise CampaignStateError("A sendAt time is required to schedule a campaign")
    if target <= now:
        raise CampaignStateError("sendAt must be in the future")
    campaign.send_at = target
    campaign.status = CampaignStatusEnum.scheduled
    return campaign


def mark_sending(campaign: Campaign, now: Optional[datetime] = None) -> Campaign:
    if campaign.status not in SENDABLE_STATUSES:
        raise CampaignStateError("Campaign cannot be sent in current status")
    campaign.status = CampaignStatusEnum.sending
    campaign.sent_at = now or datetime.now(timezone.utc)
    campaign.error_message = None
    return campaign


def completion_fields(
    campaign: Campaign,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Column values that finish a send: fabricated metrics plus the completed status."""
    metrics = simulate_delivery_metrics(campaign.audience_size, rng=rng)
    return {
        **asdict(metrics),
        "audience_size": metrics.sent,
        "status": CampaignStatusEnum.completed,
        "completed_at": now or datetime.now(timezone.utc),
    }


def failure_fields(error_message: str) -> dict[str, Any]:
    return {"status": CampaignStatusEnum.failed, "error_message": error_message[:1000]}


def complete_send(
    campaign: Campaign,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> DeliveryMetrics:
    if campaign.status != CampaignStatusEnum.sending:
        raise CampaignStateError("Only sending campaigns can be completed")
    fields = completion_fields(campaign, rng=rng, now=now)
    for key, value in fields.items():
        setattr(campaign, key, value)
    return DeliveryMetrics(**{key: fields[key] for key in METRIC_FIELDS})


def mark_paused(campaign: Campaign) -> Campaign:
    if campaign.status != CampaignStatusEnum.sending:
        raise CampaignStateError("Only sending campaigns can be paused")
    campaign.status = CampaignStatusEnum.paused
    return campaign


def mark_failed(campaign: Campaign, error_message: str) -> Campaign:
    for key, value in failure_fields(error_message).items():
        setattr(campaign, key, value)
    return campaign


def reset_to_draft(campaign: Campaign) -> Campaign:
    campaign.status = CampaignStatusEnum.draft
    campaign.sent_at = None
    campaign.completed_at = None
    campaign.error_message = None
    for key in METRIC_FIELDS:
        setattr(campaign, key, 0)
    return campaign
