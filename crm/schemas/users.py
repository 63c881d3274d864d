from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


class NotificationPreferences(BaseModel):
    email: Optional[bool] = None
    campaigns: Optional[bool] = None


class Preferences(BaseModel):
    theme: Optional[Literal["light", "dark"]] = None
    notifications: Optional[NotificationPreferences] = None


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    preferences: Optional[Preferences] = None
