from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update

from crm.db.enums import CampaignStatusEnum, CampaignTypeEnum
from crm.db.models import Campaign
from crm.db.repositories.base import Repository


class CampaignsRepository(Repository):
    def list(
        self,
        user_id: str,
        status: Optional[CampaignStatusEnum] = None,
        type: Optional[CampaignTypeEnum] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[Campaign], int]:
        stmt = select(Campaign).where(Campaign.created_by == user_id)
        if status:
            stmt = stmt.where(Campaign.status == status)
        if type:
            stmt = stmt.where(Campaign.type == type)
        total = self.session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        stmt = stmt.order_by(Campaign.created_at.desc()).limit(limit).offset(offset)
        return list(self.session.scalars(stmt).all()), total

    def list_all_for_user(self, user_id: str) -> List[Campaign]:
        stmt = select(Campaign).where(Campaign.created_by == user_id).order_by(Campaign.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, user_id: str, campaign_id: str) -> Optional[Campaign]:
        stmt = select(Campaign).where(Campaign.id == campaign_id, Campaign.created_by == user_id)
        return self.session.scalars(stmt).first()

    def get_by_id(self, campaign_id: str) -> Optional[Campaign]:
        return self.session.get(Campaign, campaign_id)

    def create(self, user_id: str, name: str, audience_segment_id: str, message: str, **fields) -> Campaign:
        campaign = Campaign(
            created_by=user_id,
            name=name,
            audience_segment_id=audience_segment_id,
            message=message,
            **fields,
        )
        return self.save(campaign)

    def update(self, campaign: Campaign, **fields) -> Campaign:
        for key, value in fields.items():
            setattr(campaign, key, value)
        return self.save(campaign)

    def update_if_status(self, campaign_id: str, expected: CampaignStatusEnum, **fields) -> bool:
        """Apply ``fields`` only while the stored status is still ``expected``."""
        stmt = (
            update(Campaign)
            .where(Campaign.id == campaign_id, Campaign.status == expected)
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.commit()
        return bool(result.rowcount)

    def delete(self, campaign: Campaign) -> None:
        self.session.delete(campaign)
        self.session.commit()

    def find_due_scheduled(self, now: datetime) -> List[Campaign]:
        stmt = select(Campaign).where(
            Campaign.status == CampaignStatusEnum.scheduled,
            Campaign.send_at.is_not(None),
            Campaign.send_at <= now,
        )
        return list(self.session.scalars(stmt).all())

    def overwrite_all(self, **fields) -> int:
        result = self.session.execute(update(Campaign).values(**fields))
        self.session.commit()
        return result.rowcount or 0
