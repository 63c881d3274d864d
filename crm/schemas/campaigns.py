from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, model_validator

from crm.db.enums import CampaignStatusEnum, CampaignTypeEnum, RecurringPatternEnum


class CampaignContent(BaseModel):
    subject: Optional[str] = Field(default=None, min_length=1)
    message: str = Field(min_length=1)
    template: Optional[str] = None
    attachments: List[dict[str, Any]] = Field(default_factory=list)


class CampaignContentUpdate(BaseModel):
    subject: Optional[str] = Field(default=None, min_length=1)
    message: Optional[str] = Field(default=None, min_length=1)
    template: Optional[str] = None
    attachments: Optional[List[dict[str, Any]]] = None


class CampaignScheduling(BaseModel):
    sendAt: Optional[datetime] = None
    timezone: str = "UTC"
    isRecurring: bool = False
    recurringPattern: Optional[RecurringPatternEnum] = None

    @model_validator(mode="after")
    def validate_recurrence(self) -> "CampaignScheduling":
        if self.isRecurring and self.recurringPattern is None:
            raise ValueError("recurringPattern is required when isRecurring is true")
        return self


class CampaignSettings(BaseModel):
    trackOpens: bool = True
    trackClicks: bool = True
    allowUnsubscribe: bool = True


class CampaignCreateRequest(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: CampaignTypeEnum = CampaignTypeEnum.email
    audienceSegment: str = Field(min_length=1)
    content: CampaignContent
    scheduling: CampaignScheduling = Field(default_factory=CampaignScheduling)
    settings: CampaignSettings = Field(default_factory=CampaignSettings)
    tags: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_subject(self) -> "CampaignCreateRequest":
        if self.type == CampaignTypeEnum.email and not self.content.subject:
            raise ValueError("content.subject is required for email campaigns")
        return self


class CampaignUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: Optional[CampaignTypeEnum] = None
    content: Optional[CampaignContentUpdate] = None
    scheduling: Optional[CampaignScheduling] = None
    settings: Optional[CampaignSettings] = None
    tags: Optional[List[str]] = None


class CampaignScheduleRequest(BaseModel):
    sendAt: Optional[datetime] = None
    timezone: Optional[str] = None


class CampaignMetrics(BaseModel):
    audienceSize: int = 0
    sent: int = 0
    delivered: int = 0
    failed: int = 0
    opened: int = 0
    clicked: int = 0
    unsubscribed: int = 0
    bounced: int = 0


class CampaignResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    type: CampaignTypeEnum
    status: CampaignStatusEnum
    audienceSegment: str
    content: CampaignContent
    scheduling: CampaignScheduling
    metrics: CampaignMetrics
    settings: CampaignSettings
    tags: List[str]
    createdBy: str
    sentAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    errorMessage: Optional[str] = None
    deliveryRate: float
    openRate: float
    clickRate: float
    createdAt: datetime
    updatedAt: datetime
