"""Pydantic schemas for membership endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..models import MembershipTier


class MembershipGrantCreate(BaseModel):
    """Tier assignment from order fulfillment or an administrator."""

    tier: MembershipTier
    duration_days: Optional[int] = Field(None, gt=0, description="Omit for a perpetual grant.")
    reason: Optional[str] = Field(None, max_length=255)


class MembershipExtend(BaseModel):
    additional_days: int = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=255)


class MembershipGrantRead(BaseModel):
    id: int
    user_id: int
    tier: MembershipTier
    start_at: datetime
    expiry_at: Optional[datetime]
    remark: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class MembershipStatusRead(BaseModel):
    user_id: int
    tier: MembershipTier
    grant_id: Optional[int]
    start_at: Optional[datetime]
    expiry_at: Optional[datetime]
    past_expiry: bool

    class Config:
        from_attributes = True


class MembershipHistoryRead(BaseModel):
    grant_id: int
    tier: MembershipTier
    start_at: datetime
    expiry_at: Optional[datetime]
    created_at: datetime
    remark: Optional[str]
    is_active: bool
    is_current: bool

    class Config:
        from_attributes = True
