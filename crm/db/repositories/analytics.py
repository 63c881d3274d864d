from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import case, func, select

from crm.db.enums import CampaignStatusEnum
from crm.db.models import AudienceSegment, Campaign, User
from crm.db.repositories.base import Repository


def _round1(value: float) -> float:
    return round(value, 1)


class AnalyticsRepository(Repository):
    """Aggregate queries behind the dashboards. ``user_id=None`` spans every owner."""

    def delivery_totals(self, user_id: Optional[str] = None) -> dict[str, int]:
        stmt = select(
            func.coalesce(func.sum(Campaign.sent), 0),
            func.coalesce(func.sum(Campaign.delivered), 0),
            func.coalesce(func.sum(Campaign.failed), 0),
            func.coalesce(func.sum(Campaign.opened), 0),
            func.coalesce(func.sum(Campaign.clicked), 0),
        )
        if user_id:
            stmt = stmt.where(Campaign.created_by == user_id)
        sent, delivered, failed, opened, clicked = self.session.execute(stmt).one()
        return {
            "totalSent": int(sent),
            "totalDelivered": int(delivered),
            "totalFailed": int(failed),
            "totalOpened": int(opened),
            "totalClicked": int(clicked),
        }

    def campaign_types(self, user_id: Optional[str] = None) -> list[dict[str, Any]]:
        completed = func.sum(case((Campaign.status == CampaignStatusEnum.completed, 1), else_=0))
        stmt = select(Campaign.type, func.count(Campaign.id), completed).group_by(Campaign.type)
        if user_id:
            stmt = stmt.where(Campaign.created_by == user_id)
        return [
            {"_id": campaign_type.value, "count": int(count), "completed": int(done or 0)}
            for campaign_type, count, done in self.session.execute(stmt).all()
        ]

    def campaign_performance(self, since: datetime) -> list[dict[str, Any]]:
        day = func.date(Campaign.created_at)
        stmt = (
            select(day, Campaign.status, func.count(Campaign.id))
            .where(Campaign.created_at >= since)
            .group_by(day, Campaign.status)
            .order_by(day)
        )
        return [
            {"_id": {"date": str(date_value), "status": status.value}, "count": int(count)}
            for date_value, status, count in self.session.execute(stmt).all()
        ]

    def audience_trends(self, user_id: str) -> list[dict[str, Any]]:
        day = func.date(AudienceSegment.created_at)
        stmt = (
            select(day, func.sum(AudienceSegment.audience_size), func.count(AudienceSegment.id))
            .where(AudienceSegment.created_by == user_id)
            .group_by(day)
            .order_by(day)
        )
        return [
            {"_id": str(date_value), "totalAudienceSize": int(total or 0), "segmentCount": int(count)}
            for date_value, total, count in self.session.execute(stmt).all()
        ]

    def recent_activity(self, user_id: str, since: datetime) -> list[dict[str, Any]]:
        day = func.date(Campaign.created_at)
        stmt = (
            select(
                day,
                func.sum(Campaign.sent),
                func.sum(Campaign.failed),
                func.sum(Campaign.sent - (Campaign.delivered + Campaign.failed)),
            )
            .where(Campaign.created_by == user_id, Campaign.created_at >= since)
            .group_by(day)
            .order_by(day)
        )
        return [
            {"_id": str(date_value), "sent": int(sent or 0), "failed": int(failed or 0), "pending": int(pending or 0)}
            for date_value, sent, failed, pending in self.session.execute(stmt).all()
        ]

    def top_campaigns(self, user_id: str, limit: int = 5) -> list[dict[str, Any]]:
        success_rate = case(
            (Campaign.sent > 0, Campaign.delivered * 100.0 / Campaign.sent),
            else_=0.0,
        ).label("success_rate")
        stmt = (
            select(Campaign, success_rate)
            .where(Campaign.created_by == user_id)
            .order_by(success_rate.desc(), Campaign.sent.desc())
            .limit(limit)
        )
        return [
            {
                "_id": campaign.id,
                "name": campaign.name,
                "type": campaign.type.value,
                "status": campaign.status.value,
                "totalSent": campaign.sent,
                "totalFailed": campaign.failed,
                "totalDelivered": campaign.delivered,
                "successRate": _round1(campaign.delivered / campaign.sent * 100) if campaign.sent else 0.0,
                "createdAt": campaign.created_at,
            }
            for campaign, _rate in self.session.execute(stmt).all()
        ]

    def count_campaigns(self, user_id: Optional[str] = None) -> int:
        stmt = select(func.count(Campaign.id))
        if user_id:
            stmt = stmt.where(Campaign.created_by == user_id)
        return int(self.session.scalar(stmt) or 0)

    def count_segments(self, user_id: Optional[str] = None) -> int:
        stmt = select(func.count(AudienceSegment.id))
        if user_id:
            stmt = stmt.where(AudienceSegment.created_by == user_id)
        return int(self.session.scalar(stmt) or 0)

    def count_users(self) -> int:
        return int(self.session.scalar(select(func.count(User.id))) or 0)

    def all_campaigns(self) -> list[Campaign]:
        return list(self.session.scalars(select(Campaign).order_by(Campaign.created_at.desc())).all())
