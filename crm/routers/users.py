from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from crm.auth.dependencies import AuthContext, get_current_user, require_admin
from crm.db.deps import get_session
from crm.db.enums import CampaignStatusEnum
from crm.db.repositories.campaigns import CampaignsRepository
from crm.db.repositories.segments import SegmentsRepository
from crm.db.repositories.users import UsersRepository
from crm.routers.auth import serialize_user
from crm.schemas.common import envelope
from crm.schemas.users import ProfileUpdateRequest
from crm.services.campaigns import compute_rates, percentage

router = APIRouter(prefix="/api/users", tags=["users"])


def _merge_preferences(current: dict, update: dict) -> dict:
    merged = dict(current or {})
    for key, value in update.items():
        if isinstance(value, dict):
            merged[key] = {**(merged.get(key) or {}), **value}
        else:
            merged[key] = value
    return merged


@router.get("/profile")
def get_profile(auth: AuthContext = Depends(get_current_user), session: Session = Depends(get_session)):
    user = UsersRepository(session).get(auth.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return envelope({"user": serialize_user(user)})


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateRequest,
    auth: AuthContext = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    repo = UsersRepository(session)
    user = repo.get(auth.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    fields = {}
    if payload.name is not None:
        fields["name"] = payload.name.strip()
    if payload.preferences is not None:
        fields["preferences"] = _merge_preferences(
            user.preferences, payload.preferences.model_dump(exclude_none=True)
        )
    user = repo.update(user, **fields)
    return envelope({"user": serialize_user(user)}, message="Profile updated successfully")


@router.get("/dashboard")
def dashboard(auth: AuthContext = Depends(get_current_user), session: Session = Depends(get_session)):
    campaigns = CampaignsRepository(session).list_all_for_user(auth.user_id)
    segments = SegmentsRepository(session).find_by_user(auth.user_id)

    active_statuses = {CampaignStatusEnum.sending, CampaignStatusEnum.scheduled}
    messages_sent = sum(campaign.sent for campaign in campaigns)
    total_opened = sum(campaign.opened for campaign in campaigns)
    total_clicked = sum(campaign.clicked for campaign in campaigns)

    recent = [
        {
            "id": campaign.id,
            "name": campaign.name,
            "status": campaign.status.value,
            "type": campaign.type.value,
            "sent": campaign.sent,
            "openRate": compute_rates(campaign)["openRate"],
            "createdAt": campaign.created_at,
        }
        for campaign in campaigns[:5]
    ]

    return envelope(
        {
            "stats": {
                "campaigns": {
                    "total": len(campaigns),
                    "active": sum(1 for c in campaigns if c.status in active_statuses),
                    "completed": sum(1 for c in campaigns if c.status == CampaignStatusEnum.completed),
                },
                "segments": {
                    "total": len(segments),
                    "totalAudience": sum(segment.audience_size for segment in segments),
                },
                "performance": {
                    "messagesSent": messages_sent,
                    "avgOpenRate": percentage(total_opened, messages_sent),
                    "avgClickRate": percentage(total_clicked, total_opened),
                },
            },
            "recentCampaigns": recent,
        }
    )


@router.get("")
def list_users(_admin: AuthContext = Depends(require_admin), session: Session = Depends(get_session)):
    users = UsersRepository(session).list_active()
    return envelope({"users": [serialize_user(user) for user in users]}, count=len(users))
