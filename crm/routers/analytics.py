from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.orm import Session

from crm.auth.dependencies import AuthContext, get_current_user
from crm.db.deps import get_session
from crm.db.enums import CampaignStatusEnum
from crm.db.models import Campaign
from crm.db.repositories.analytics import AnalyticsRepository
from crm.db.repositories.campaigns import CampaignsRepository
from crm.db.repositories.users import CustomersRepository
from crm.schemas.analytics import ResetDemoRequest, SimulateDeliveryRequest
from crm.schemas.common import envelope
from crm.services.campaigns import percentage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/analytics", tags=["analytics"])
# Unauthenticated demo endpoints; only mounted when DEBUG_ENDPOINTS_ENABLED is set.
debug_router = APIRouter(prefix="/api/analytics", tags=["analytics-debug"])

ACTIVITY_WINDOW = timedelta(days=30)


def _campaign_summary(campaign: Campaign) -> dict[str, Any]:
    return {
        "id": campaign.id,
        "name": campaign.name,
        "status": campaign.status.value,
        "type": campaign.type.value,
        "metrics": {
            "audienceSize": campaign.audience_size,
            "sent": campaign.sent,
            "delivered": campaign.delivered,
            "failed": campaign.failed,
            "opened": campaign.opened,
            "clicked": campaign.clicked,
        },
        "createdBy": campaign.created_by,
        "createdAt": campaign.created_at,
    }


def _delivery_chart(totals: dict[str, int], has_campaigns: bool) -> list[dict[str, Any]]:
    if not has_campaigns:
        return [{"_id": "pending", "count": 1}]
    sent = totals["totalSent"]
    delivered = totals["totalDelivered"]
    failed = totals["totalFailed"]
    chart = [
        {"_id": "sent", "count": sent},
        {"_id": "delivered", "count": delivered},
        {"_id": "failed", "count": failed},
        {"_id": "pending", "count": max(0, sent - delivered - failed)},
    ]
    return [item for item in chart if item["count"] > 0]


@router.get("/dashboard")
def dashboard(auth: AuthContext = Depends(get_current_user), session: Session = Depends(get_session)):
    repo = AnalyticsRepository(session)
    since = datetime.now(timezone.utc) - ACTIVITY_WINDOW

    total_campaigns = repo.count_campaigns(auth.user_id)
    totals = repo.delivery_totals(auth.user_id)
    metrics = {
        "totalCampaigns": total_campaigns,
        "totalCustomers": CustomersRepository(session).count(),
        "totalAudienceSegments": repo.count_segments(auth.user_id),
        "totalMessages": totals["totalSent"],
        "successfulMessages": totals["totalDelivered"],
        "overallSuccessRate": percentage(totals["totalDelivered"], totals["totalSent"]),
    }
    logger.debug("Analytics dashboard computed", extra={"user_id": auth.user_id, **metrics})

    return envelope(
        {
            "metrics": metrics,
            "charts": {
                # Performance spans every owner so the demo chart is never empty.
                "campaignPerformance": repo.campaign_performance(since),
                "deliveryStats": _delivery_chart(totals, total_campaigns > 0),
                "campaignTypes": repo.campaign_types(auth.user_id),
                "audienceTrends": repo.audience_trends(auth.user_id),
                "recentActivity": repo.recent_activity(auth.user_id, since),
            },
            "topCampaigns": repo.top_campaigns(auth.user_id),
        }
    )


@debug_router.get("/debug")
def debug_data(session: Session = Depends(get_session)):
    repo = AnalyticsRepository(session)
    campaigns = repo.all_campaigns()
    return envelope(
        {
            "deliveryStats": [repo.delivery_totals()] if campaigns else [],
            "campaignTypes": repo.campaign_types(),
            "allCampaigns": [_campaign_summary(c) for c in campaigns],
            "totalCampaigns": len(campaigns),
        }
    )


@debug_router.get("/dashboard-debug")
def dashboard_debug(session: Session = Depends(get_session)):
    repo = AnalyticsRepository(session)
    campaigns = repo.all_campaigns()
    totals = repo.delivery_totals()
    return envelope(
        {
            "allCampaigns": [_campaign_summary(c) for c in campaigns],
            "deliveryStats": [totals] if campaigns else [],
            "totalCampaigns": totals,
        }
    )


@debug_router.get("/test")
def data_check(session: Session = Depends(get_session)):
    repo = AnalyticsRepository(session)
    campaigns = repo.all_campaigns()
    return envelope(
        {
            "campaignCount": len(campaigns),
            "userCount": repo.count_users(),
            "segmentCount": repo.count_segments(),
            "sampleCampaign": _campaign_summary(campaigns[0]) if campaigns else None,
        }
    )


@debug_router.post("/simulate-delivery")
def simulate_delivery(
    payload: Optional[SimulateDeliveryRequest] = Body(default=None),
    session: Session = Depends(get_session),
):
    repo = CampaignsRepository(session)
    campaign_id = payload.campaignId if payload else None
    if campaign_id:
        campaign = repo.get_by_id(campaign_id)
    else:
        recent = AnalyticsRepository(session).all_campaigns()
        campaign = recent[0] if recent else None
    if not campaign:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")

    # No delivery provider: a pending send with a handful of early failures.
    repo.update(
        campaign,
        sent=150,
        delivered=0,
        failed=5,
        opened=0,
        clicked=0,
        status=CampaignStatusEnum.sending,
    )
    logger.info("Demo delivery simulated", extra={"campaign_id": campaign.id})
    return envelope(message="Demo data updated to pending status")


@debug_router.post("/reset-demo")
def reset_demo(
    payload: Optional[ResetDemoRequest] = Body(default=None),
    session: Session = Depends(get_session),
):
    values = payload or ResetDemoRequest()
    updated = CampaignsRepository(session).overwrite_all(
        status=CampaignStatusEnum.completed,
        audience_size=values.audienceSize,
        sent=values.sent,
        delivered=values.delivered,
        failed=values.failed,
        opened=values.opened,
        clicked=values.clicked,
    )
    logger.info("Demo metrics reset", extra={"campaigns": updated})
    return envelope(message="Demo data reset to realistic values", metrics=values.model_dump())
