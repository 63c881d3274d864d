import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from crm.auth.dependencies import AuthContext, get_current_user
from crm.db.deps import get_session
from crm.db.models import AudienceSegment
from crm.db.repositories.segments import SegmentsRepository
from crm.schemas.common import envelope
from crm.schemas.segments import (
    AudienceEstimateResponse,
    RulesPreviewRequest,
    SegmentCreateRequest,
    SegmentResponse,
    SegmentRule,
    SegmentUpdateRequest,
)
from crm.services.segments import estimate_audience, refresh_segment_size

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/audience", tags=["audience"])


def _dump_rules(rules: list[SegmentRule]) -> list[dict]:
    return [rule.model_dump(mode="json") for rule in rules]


def _serialize_segment(segment: AudienceSegment) -> SegmentResponse:
    return SegmentResponse(
        id=segment.id,
        name=segment.name,
        description=segment.description,
        rules=[SegmentRule.model_validate(rule) for rule in segment.rules or []],
        audienceSize=segment.audience_size,
        estimatedReach=segment.estimated_reach,
        usageCount=segment.usage_count,
        tags=segment.tags or [],
        isActive=segment.is_active,
        createdBy=segment.created_by,
        lastUpdated=segment.last_updated,
        createdAt=segment.created_at,
        updatedAt=segment.updated_at,
    )


def _get_owned_segment(repo: SegmentsRepository, auth: AuthContext, segment_id: str) -> AudienceSegment:
    segment = repo.get(auth.user_id, segment_id)
    if not segment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Audience segment not found")
    return segment


@router.get("")
def list_segments(auth: AuthContext = Depends(get_current_user), session: Session = Depends(get_session)):
    segments = SegmentsRepository(session).find_by_user(auth.user_id)
    return envelope({"segments": [_serialize_segment(s) for s in segments]}, count=len(segments))


@router.get("/popular")
def popular_segments(
    limit: int = Query(default=10, ge=1, le=100),
    _auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    segments = SegmentsRepository(session).find_popular(limit=limit)
    return envelope({"segments": [_serialize_segment(s) for s in segments]}, count=len(segments))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_segment(
    payload: SegmentCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    estimate = estimate_audience(payload.rules)
    segment = SegmentsRepository(session).create(
        auth.user_id,
        name=payload.name,
        description=payload.description,
        rules=_dump_rules(payload.rules),
        tags=payload.tags,
        audience_size=estimate.audience_size,
        estimated_reach=estimate.estimated_reach,
    )
    logger.info("Audience segment created", extra={"segment_id": segment.id, "user_id": auth.user_id})
    return envelope({"segment": _serialize_segment(segment)}, message="Audience segment created successfully")


@router.post("/preview")
def preview_rules(payload: RulesPreviewRequest, _auth: AuthContext = Depends(get_current_user)):
    estimate = estimate_audience(payload.rules)
    return envelope(AudienceEstimateResponse(**estimate.as_payload()))


@router.get("/{segment_id}")
def get_segment(
    segment_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    segment = _get_owned_segment(SegmentsRepository(session), auth, segment_id)
    return envelope({"segment": _serialize_segment(segment)})


@router.put("/{segment_id}")
def update_segment(
    segment_id: str,
    payload: SegmentUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = SegmentsRepository(session)
    segment = _get_owned_segment(repo, auth, segment_id)

    fields = {}
    if payload.name is not None:
        fields["name"] = payload.name
    if payload.description is not None:
        fields["description"] = payload.description
    if payload.rules is not None:
        fields["rules"] = _dump_rules(payload.rules)
    if payload.tags is not None:
        fields["tags"] = payload.tags
    segment = repo.update(segment, **fields)
    refresh_segment_size(repo, segment)
    return envelope({"segment": _serialize_segment(segment)}, message="Audience segment updated successfully")


@router.delete("/{segment_id}")
def delete_segment(
    segment_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = SegmentsRepository(session)
    segment = _get_owned_segment(repo, auth, segment_id)
    repo.soft_delete(segment)
    return envelope(message="Audience segment deleted successfully")


@router.post("/{segment_id}/preview")
def preview_segment(
    segment_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = SegmentsRepository(session)
    segment = _get_owned_segment(repo, auth, segment_id)
    estimate = refresh_segment_size(repo, segment)
    return envelope(AudienceEstimateResponse(**estimate.as_payload()))
