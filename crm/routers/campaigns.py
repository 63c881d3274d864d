import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from crm.auth.dependencies import AuthContext, get_current_user, require_admin
from crm.db.deps import get_session
from crm.db.enums import CampaignStatusEnum, CampaignTypeEnum
from crm.db.models import Campaign
from crm.db.repositories.campaigns import CampaignsRepository
from crm.db.repositories.segments import SegmentsRepository
from crm.schemas.campaigns import (
    CampaignContent,
    CampaignCreateRequest,
    CampaignMetrics,
    CampaignResponse,
    CampaignScheduleRequest,
    CampaignScheduling,
    CampaignSettings,
    CampaignUpdateRequest,
)
from crm.schemas.common import envelope, page_count
from crm.services.campaigns import (
    as_utc,
    compute_rates,
    ensure_editable,
    mark_paused,
    mark_scheduled,
    mark_sending,
    percentage,
    reset_to_draft,
)
from crm.services.dispatcher import SendDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/campaigns", tags=["campaigns"])


def _serialize_campaign(campaign: Campaign) -> CampaignResponse:
    return CampaignResponse(
        id=campaign.id,
        name=campaign.name,
        description=campaign.description,
        type=campaign.type,
        status=campaign.status,
        audienceSegment=campaign.audience_segment_id,
        content=CampaignContent(
            subject=campaign.subject,
            message=campaign.message,
            template=campaign.template,
            attachments=campaign.attachments or [],
        ),
        scheduling=CampaignScheduling(
            sendAt=campaign.send_at,
            timezone=campaign.schedule_timezone,
            isRecurring=campaign.is_recurring,
            recurringPattern=campaign.recurring_pattern,
        ),
        metrics=CampaignMetrics(
            audienceSize=campaign.audience_size,
            sent=campaign.sent,
            delivered=campaign.delivered,
            failed=campaign.failed,
            opened=campaign.opened,
            clicked=campaign.clicked,
            unsubscribed=campaign.unsubscribed,
            bounced=campaign.bounced,
        ),
        settings=CampaignSettings(
            trackOpens=campaign.track_opens,
            trackClicks=campaign.track_clicks,
            allowUnsubscribe=campaign.allow_unsubscribe,
        ),
        tags=campaign.tags or [],
        createdBy=campaign.created_by,
        sentAt=campaign.sent_at,
        completedAt=campaign.completed_at,
        errorMessage=campaign.error_message,
        createdAt=campaign.created_at,
        updatedAt=campaign.updated_at,
        **compute_rates(campaign),
    )


def _scheduling_fields(scheduling: CampaignScheduling) -> dict:
    return {
        "send_at": as_utc(scheduling.sendAt),
        "schedule_timezone": scheduling.timezone,
        "is_recurring": scheduling.isRecurring,
        "recurring_pattern": scheduling.recurringPattern if scheduling.isRecurring else None,
    }


def _settings_fields(campaign_settings: CampaignSettings) -> dict:
    return {
        "track_opens": campaign_settings.trackOpens,
        "track_clicks": campaign_settings.trackClicks,
        "allow_unsubscribe": campaign_settings.allowUnsubscribe,
    }


def _get_owned_campaign(repo: CampaignsRepository, auth: AuthContext, campaign_id: str) -> Campaign:
    campaign = repo.get(auth.user_id, campaign_id)
    if not campaign:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    return campaign


@router.get("")
def list_campaigns(
    status_filter: Optional[CampaignStatusEnum] = Query(default=None, alias="status"),
    type_filter: Optional[CampaignTypeEnum] = Query(default=None, alias="type"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    campaigns, total = CampaignsRepository(session).list(
        auth.user_id,
        status=status_filter,
        type=type_filter,
        limit=limit,
        offset=(page - 1) * limit,
    )
    return envelope(
        {"campaigns": [_serialize_campaign(c) for c in campaigns]},
        count=len(campaigns),
        total=total,
        page=page,
        pages=page_count(total, limit),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_campaign(
    payload: CampaignCreateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    segments_repo = SegmentsRepository(session)
    segment = segments_repo.get(auth.user_id, payload.audienceSegment, active_only=True)
    if not segment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Audience segment not found or inactive",
        )

    campaign = CampaignsRepository(session).create(
        auth.user_id,
        name=payload.name,
        audience_segment_id=segment.id,
        message=payload.content.message,
        description=payload.description,
        type=payload.type,
        status=CampaignStatusEnum.draft,
        subject=payload.content.subject,
        template=payload.content.template,
        attachments=payload.content.attachments,
        tags=payload.tags,
        audience_size=segment.audience_size,
        **_scheduling_fields(payload.scheduling),
        **_settings_fields(payload.settings),
    )
    segments_repo.increment_usage(segment)
    logger.info(
        "Campaign created",
        extra={"campaign_id": campaign.id, "segment_id": segment.id, "user_id": auth.user_id},
    )
    return envelope({"campaign": _serialize_campaign(campaign)}, message="Campaign created successfully")


@router.get("/stats/overview")
def campaign_stats(auth: AuthContext = Depends(get_current_user), session: Session = Depends(get_session)):
    campaigns = CampaignsRepository(session).list_all_for_user(auth.user_id)
    totals = {
        "totalSent": sum(c.sent for c in campaigns),
        "totalDelivered": sum(c.delivered for c in campaigns),
        "totalOpened": sum(c.opened for c in campaigns),
        "totalClicked": sum(c.clicked for c in campaigns),
    }
    stats = {
        "total": len(campaigns),
        "byStatus": {s.value: sum(1 for c in campaigns if c.status == s) for s in CampaignStatusEnum},
        "byType": {t.value: sum(1 for c in campaigns if c.type == t) for t in CampaignTypeEnum},
        "metrics": totals,
    }
    if any(c.status == CampaignStatusEnum.completed for c in campaigns):
        stats["averages"] = {
            "deliveryRate": percentage(totals["totalDelivered"], totals["totalSent"]),
            "openRate": percentage(totals["totalOpened"], totals["totalDelivered"]),
            "clickRate": percentage(totals["totalClicked"], totals["totalOpened"]),
        }
    return envelope({"stats": stats})


@router.get("/{campaign_id}")
def get_campaign(
    campaign_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    campaign = _get_owned_campaign(CampaignsRepository(session), auth, campaign_id)
    return envelope({"campaign": _serialize_campaign(campaign)})


@router.put("/{campaign_id}")
def update_campaign(
    campaign_id: str,
    payload: CampaignUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = CampaignsRepository(session)
    campaign = _get_owned_campaign(repo, auth, campaign_id)
    ensure_editable(campaign, action="edit")

    fields = {}
    if payload.name is not None:
        fields["name"] = payload.name
    if payload.description is not None:
        fields["description"] = payload.description
    if payload.type is not None:
        fields["type"] = payload.type
    if payload.content is not None:
        content = payload.content.model_dump(exclude_unset=True)
        for key in ("message", "attachments"):
            if content.get(key) is None:
                content.pop(key, None)
        fields.update(content)
    if payload.scheduling is not None:
        fields.update(_scheduling_fields(payload.scheduling))
    if payload.settings is not None:
        fields.update(_settings_fields(payload.settings))
    if payload.tags is not None:
        fields["tags"] = payload.tags

    resulting_type = fields.get("type", campaign.type)
    resulting_subject = fields.get("subject", campaign.subject)
    if resulting_type == CampaignTypeEnum.email and not resulting_subject:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="content.subject is required for email campaigns",
        )

    campaign = repo.update(campaign, **fields)
    return envelope({"campaign": _serialize_campaign(campaign)}, message="Campaign updated successfully")


@router.delete("/{campaign_id}")
def delete_campaign(
    campaign_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = CampaignsRepository(session)
    campaign = _get_owned_campaign(repo, auth, campaign_id)
    ensure_editable(campaign, action="delete")
    repo.delete(campaign)
    return envelope(message="Campaign deleted successfully")


@router.post("/{campaign_id}/send")
async def send_campaign(
    campaign_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    dispatcher: SendDispatcher = Depends(get_dispatcher),
):
    repo = CampaignsRepository(session)
    campaign = _get_owned_campaign(repo, auth, campaign_id)
    mark_sending(campaign)
    repo.save(campaign)
    logger.info("Campaign send started", extra={"campaign_id": campaign.id, "user_id": auth.user_id})

    await dispatcher.dispatch(campaign.id)
    session.refresh(campaign)
    return envelope({"campaign": _serialize_campaign(campaign)}, message="Campaign sent successfully")


@router.post("/{campaign_id}/schedule")
def schedule_campaign(
    campaign_id: str,
    payload: CampaignScheduleRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = CampaignsRepository(session)
    campaign = _get_owned_campaign(repo, auth, campaign_id)
    mark_scheduled(campaign, payload.sendAt)
    if payload.timezone:
        campaign.schedule_timezone = payload.timezone
    campaign = repo.save(campaign)
    return envelope({"campaign": _serialize_campaign(campaign)}, message="Campaign scheduled successfully")


@router.post("/{campaign_id}/pause")
async def pause_campaign(
    campaign_id: str,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
    dispatcher: SendDispatcher = Depends(get_dispatcher),
):
    repo = CampaignsRepository(session)
    campaign = _get_owned_campaign(repo, auth, campaign_id)
    mark_paused(campaign)
    dispatcher.cancel(campaign.id)
    campaign = repo.save(campaign)
    return envelope({"campaign": _serialize_campaign(campaign)}, message="Campaign paused successfully")


@router.post("/{campaign_id}/reset")
async def reset_campaign(
    campaign_id: str,
    admin: AuthContext = Depends(require_admin),
    session: Session = Depends(get_session),
    dispatcher: SendDispatcher = Depends(get_dispatcher),
):
    repo = CampaignsRepository(session)
    campaign = repo.get_by_id(campaign_id)
    if not campaign:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")
    dispatcher.cancel(campaign.id)
    reset_to_draft(campaign)
    campaign = repo.save(campaign)
    logger.info("Campaign reset to draft", extra={"campaign_id": campaign.id, "admin_id": admin.user_id})
    return envelope({"campaign": _serialize_campaign(campaign)}, message="Campaign reset to draft successfully")
