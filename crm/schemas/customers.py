from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class CustomerCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    email: EmailStr
    phone: Optional[str] = None
    location: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    totalSpent: float = Field(default=0, ge=0)
    orders: int = Field(default=0, ge=0)


class CustomerUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    totalSpent: Optional[float] = Field(default=None, ge=0)
    orders: Optional[int] = Field(default=None, ge=0)


class CustomerResponse(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    location: Optional[str] = None
    company: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    totalSpent: float
    orders: int
    visits: int
    createdBy: Optional[str] = None
    createdAt: datetime
    updatedAt: datetime
