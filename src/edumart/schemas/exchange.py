"""Pydantic schemas for semester exchange endpoints."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ExchangeCreate(BaseModel):
    semester_id: int


class ExchangeReceiptRead(BaseModel):
    """Response returned after redeeming a semester."""

    exchange_id: int
    semester_id: int
    debit_id: int
    points_spent: int
    remaining_balance: int
    materials_unlocked: int

    class Config:
        from_attributes = True


class ExchangedSemesterRead(BaseModel):
    exchange_id: int
    semester_id: int
    semester_name: Optional[str]
    points_spent: int
    exchanged_at: datetime

    class Config:
        from_attributes = True


class SemesterOfferRead(BaseModel):
    semester_id: int
    name: str
    subject: Optional[str]
    materials_count: int
    points_required: int

    class Config:
        from_attributes = True
