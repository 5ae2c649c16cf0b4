"""Pydantic schemas for point ledger endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import GrantSource


class PointsAdd(BaseModel):
    """Incoming payload for crediting points."""

    amount: int = Field(..., gt=0, description="Points to credit.")
    source: GrantSource = GrantSource.ADMIN_GRANT
    expiry_days: Optional[int] = Field(None, ge=0, description="Days until expiry; omit for points that never expire.")
    reason: str = Field(..., min_length=1, max_length=255, description="Audit note for the operation.")


class PointsDeduct(BaseModel):
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=255)


class PointsReset(BaseModel):
    reason: str = Field(..., min_length=1, max_length=255)


class PointsSet(BaseModel):
    target_amount: int = Field(..., ge=0, description="Balance the user should end up with.")
    reason: str = Field(..., min_length=1, max_length=255)


class GrantReceiptRead(BaseModel):
    grant_id: int
    amount: int
    expires_at: Optional[datetime]
    new_balance: int

    class Config:
        from_attributes = True


class DebitReceiptRead(BaseModel):
    debit_id: Optional[int]
    amount: int
    new_balance: int

    class Config:
        from_attributes = True


class BalanceRead(BaseModel):
    user_id: int
    balance: int


class SweepResult(BaseModel):
    user_id: int
    expired_points: int
    balance: int


class ActiveGrantRead(BaseModel):
    grant_id: int
    amount: int
    source: GrantSource
    acquired_at: datetime
    expires_at: Optional[datetime]
    days_remaining: Optional[int]
    expiring_soon: bool

    class Config:
        from_attributes = True


class PointsSummaryRead(BaseModel):
    """Balance with per-grant expiry countdown."""

    user_id: int
    total_points: int
    expiring_soon_points: int
    active_grant_count: int
    active_grants: List[ActiveGrantRead]

    class Config:
        from_attributes = True


class LedgerEntryRead(BaseModel):
    kind: str
    entry_id: int
    amount: int = Field(..., description="Signed change; debits are negative.")
    label: str
    status: Optional[str]
    created_at: datetime
    expires_at: Optional[datetime]
    remark: Optional[str]

    class Config:
        from_attributes = True


class LedgerPageRead(BaseModel):
    entries: List[LedgerEntryRead]
    total: int
    page: int
    limit: int
    total_pages: int

    class Config:
        from_attributes = True
