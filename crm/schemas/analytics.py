from typing import Optional

from pydantic import BaseModel, Field


class SimulateDeliveryRequest(BaseModel):
    campaignId: Optional[str] = None


class ResetDemoRequest(BaseModel):
    audienceSize: int = Field(default=1, ge=0)
    sent: int = Field(default=1, ge=0)
    delivered: int = Field(default=1, ge=0)
    failed: int = Field(default=0, ge=0)
    opened: int = Field(default=1, ge=0)
    clicked: int = Field(default=0, ge=0)
