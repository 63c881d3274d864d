from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from crm.db.enums import AuthProviderEnum, UserRoleEnum


class RegisterRequest(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name must be at least 2 characters")
        return value


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    role: UserRoleEnum
    provider: AuthProviderEnum
    avatar: Optional[str] = None
    isActive: bool
    lastLogin: Optional[datetime] = None
    preferences: dict = Field(default_factory=dict)
    createdAt: datetime


class TokenResponse(BaseModel):
    token: str
    user: UserResponse
