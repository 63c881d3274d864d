from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select

from crm.db.models import AudienceSegment
from crm.db.repositories.base import Repository


class SegmentsRepository(Repository):
    def find_by_user(self, user_id: str) -> List[AudienceSegment]:
        stmt = (
            select(AudienceSegment)
            .where(AudienceSegment.created_by == user_id, AudienceSegment.is_active.is_(True))
            .order_by(AudienceSegment.created_at.desc())
        )
        return list(self.session.scalars(stmt).all())

    def find_popular(self, limit: int = 10) -> List[AudienceSegment]:
        stmt = (
            select(AudienceSegment)
            .where(AudienceSegment.is_active.is_(True))
            .order_by(AudienceSegment.usage_count.desc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, user_id: str, segment_id: str, active_only: bool = False) -> Optional[AudienceSegment]:
        stmt = select(AudienceSegment).where(
            AudienceSegment.id == segment_id, AudienceSegment.created_by == user_id
        )
        if active_only:
            stmt = stmt.where(AudienceSegment.is_active.is_(True))
        return self.session.scalars(stmt).first()

    def create(self, user_id: str, name: str, description: str, rules: list[dict], **fields) -> AudienceSegment:
        segment = AudienceSegment(
            created_by=user_id, name=name, description=description, rules=rules, **fields
        )
        return self.save(segment)

    def update(self, segment: AudienceSegment, **fields) -> AudienceSegment:
        for key, value in fields.items():
            setattr(segment, key, value)
        segment.last_updated = datetime.now(timezone.utc)
        return self.save(segment)

    def set_size(self, segment: AudienceSegment, audience_size: int, estimated_reach: int) -> AudienceSegment:
        segment.audience_size = audience_size
        segment.estimated_reach = estimated_reach
        return self.save(segment)

    def increment_usage(self, segment: AudienceSegment) -> AudienceSegment:
        segment.usage_count = (segment.usage_count or 0) + 1
        return self.save(segment)

    def soft_delete(self, segment: AudienceSegment) -> AudienceSegment:
        segment.is_active = False
        return self.save(segment)
