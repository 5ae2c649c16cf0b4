"""Endpoints for semester exchanges."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...core.database import get_db, unit_of_work
from ...core.errors import EntitlementError
from ...schemas import ExchangeCreate, ExchangedSemesterRead, ExchangeReceiptRead, SemesterOfferRead
from ...services import catalog_service, exchange_service

router = APIRouter(tags=["exchanges"])


@router.get(
    "/semesters/available",
    response_model=List[SemesterOfferRead],
    summary="Semesters that can be exchanged for points",
)
def list_available_semesters(db: Session = Depends(get_db)) -> List[SemesterOfferRead]:
    return [SemesterOfferRead.model_validate(offer) for offer in catalog_service.available_semesters(db)]


@router.get(
    "/users/{user_id}/exchanges",
    response_model=List[ExchangedSemesterRead],
    summary="Semesters the user has exchanged",
)
def list_exchanges(user_id: int, db: Session = Depends(get_db)) -> List[ExchangedSemesterRead]:
    try:
        exchanges = exchange_service.list_exchanged_semesters(db, user_id=user_id)
        return [ExchangedSemesterRead.model_validate(item) for item in exchanges]
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post(
    "/users/{user_id}/exchanges",
    response_model=ExchangeReceiptRead,
    status_code=status.HTTP_201_CREATED,
    summary="Exchange points for a semester",
    responses={
        201: {
            "description": "Semester unlocked",
            "content": {
                "application/json": {
                    "example": {
                        "exchange_id": 3,
                        "semester_id": 12,
                        "debit_id": 18,
                        "points_spent": 5,
                        "remaining_balance": 5,
                        "materials_unlocked": 8,
                    }
                }
            },
        },
        400: {"description": "Insufficient points"},
        404: {"description": "User or semester not found"},
        409: {"description": "Semester already exchanged or concurrent update"},
    },
)
def create_exchange(
    user_id: int,
    payload: ExchangeCreate,
    db: Session = Depends(get_db),
) -> ExchangeReceiptRead:
    try:
        with unit_of_work(db):
            receipt = exchange_service.exchange_semester(db, user_id=user_id, semester_id=payload.semester_id)
        return ExchangeReceiptRead.model_validate(receipt)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
