"""Audience size estimation for rule-based segments.

Segment matching is not evaluated against customer records; the size is a
pseudo-random placeholder drawn on every computation and cached on the segment.
"""
from __future__ import annotations

from dataclasses import dataclass
import logging
import math
import random
from typing import Any, Optional, Sequence

from crm.db.models import AudienceSegment
from crm.db.repositories.segments import SegmentsRepository
from crm.errors import SegmentValidationError

logger = logging.getLogger(__name__)

MIN_AUDIENCE_SIZE = 100
MAX_AUDIENCE_SIZE = 5100
REACH_FACTOR = 0.85


@dataclass(frozen=True)
class AudienceEstimate:
    audience_size: int
    estimated_reach: int

    def as_payload(self) -> dict[str, int]:
        return {"audienceSize": self.audience_size, "estimatedReach": self.estimated_reach}


def estimate_audience(rules: Sequence[Any], rng: Optional[random.Random] = None) -> AudienceEstimate:
    if not rules:
        raise SegmentValidationError("At least one rule is required")
    source = rng or random
    audience_size = source.randrange(MIN_AUDIENCE_SIZE, MAX_AUDIENCE_SIZE)
    return AudienceEstimate(
        audience_size=audience_size,
        estimated_reach=math.floor(audience_size * REACH_FACTOR),
    )


def refresh_segment_size(
    repo: SegmentsRepository,
    segment: AudienceSegment,
    rng: Optional[random.Random] = None,
) -> AudienceEstimate:
    estimate = estimate_audience(segment.rules, rng=rng)
    repo.set_size(segment, estimate.audience_size, estimate.estimated_reach)
    logger.debug(
        "Segment size refreshed",
        extra={"segment_id": segment.id, "audience_size": estimate.audience_size},
    )
    return estimate
