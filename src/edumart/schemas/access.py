"""Pydantic schemas for material access endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import AccessType


class AccessCheckRequest(BaseModel):
    material_ids: List[int] = Field(..., min_length=1, max_length=200)


class AccessDecisionRead(BaseModel):
    material_id: int
    granted: bool
    reason: str


class PurchaseRecordCreate(BaseModel):
    """Written by order fulfillment once a material order is paid."""

    material_id: int
    expiry_days: Optional[int] = Field(None, gt=0)


class AccessRecordRead(BaseModel):
    id: int
    material_id: int
    access_type: AccessType
    expiry_at: Optional[datetime]
    exchange_id: Optional[int]
    updated_at: datetime

    class Config:
        from_attributes = True
