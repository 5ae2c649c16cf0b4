"""Endpoints for the point ledger."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db, unit_of_work
from ...core.errors import EntitlementError
from ...models import DebitReason
from ...schemas import (
    BalanceRead,
    DebitReceiptRead,
    GrantReceiptRead,
    LedgerPageRead,
    PointsAdd,
    PointsDeduct,
    PointsReset,
    PointsSet,
    PointsSummaryRead,
    SweepResult,
)
from ...services import ledger_service

router = APIRouter(prefix="/users/{user_id}/points", tags=["points"])


@router.get(
    "",
    response_model=PointsSummaryRead,
    summary="Current points with expiry countdown",
    responses={
        200: {
            "description": "Balance after sweeping expired grants",
            "content": {
                "application/json": {
                    "example": {
                        "user_id": 42,
                        "total_points": 15,
                        "expiring_soon_points": 5,
                        "active_grant_count": 2,
                        "active_grants": [
                            {
                                "grant_id": 7,
                                "amount": 5,
                                "source": "purchase",
                                "acquired_at": "2026-01-03T09:00:00",
                                "expires_at": "2026-02-02T09:00:00",
                                "days_remaining": 12,
                                "expiring_soon": True,
                            },
                            {
                                "grant_id": 9,
                                "amount": 10,
                                "source": "admin_grant",
                                "acquired_at": "2026-01-10T12:00:00",
                                "expires_at": None,
                                "days_remaining": None,
                                "expiring_soon": False,
                            },
                        ],
                    }
                }
            },
        },
        404: {"description": "User not found"},
    },
)
def get_points(user_id: int, db: Session = Depends(get_db)) -> PointsSummaryRead:
    try:
        with unit_of_work(db):
            summary = ledger_service.points_summary(db, user_id=user_id)
        return PointsSummaryRead.model_validate(summary)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.get("/history", response_model=LedgerPageRead, summary="Grant and debit history")
def get_history(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> LedgerPageRead:
    try:
        ledger_page = ledger_service.list_ledger_entries(db, user_id=user_id, page=page, limit=limit)
        return LedgerPageRead.model_validate(ledger_page)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post(
    "/grants",
    response_model=GrantReceiptRead,
    status_code=status.HTTP_201_CREATED,
    summary="Credit points",
    responses={400: {"description": "Invalid amount"}, 404: {"description": "User not found"}},
)
def add_points(user_id: int, payload: PointsAdd, db: Session = Depends(get_db)) -> GrantReceiptRead:
    """Credit points to a user.

    Example request body::

        {
            "amount": 10,
            "source": "purchase",
            "expiry_days": 365,
            "reason": "order 20260103-0001"
        }
    """

    try:
        with unit_of_work(db):
            receipt = ledger_service.add_points(
                db,
                user_id=user_id,
                amount=payload.amount,
                source=payload.source,
                expiry_days=payload.expiry_days,
                remark=payload.reason,
            )
        return GrantReceiptRead.model_validate(receipt)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post(
    "/debits",
    response_model=DebitReceiptRead,
    status_code=status.HTTP_201_CREATED,
    summary="Deduct points",
    responses={400: {"description": "Invalid amount or insufficient points"}, 404: {"description": "User not found"}},
)
def deduct_points(user_id: int, payload: PointsDeduct, db: Session = Depends(get_db)) -> DebitReceiptRead:
    try:
        with unit_of_work(db):
            receipt = ledger_service.deduct_points(
                db,
                user_id=user_id,
                amount=payload.amount,
                reason=DebitReason.ADMIN_DEDUCTION,
                remark=payload.reason,
            )
        return DebitReceiptRead.model_validate(receipt)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post("/reset", response_model=DebitReceiptRead, summary="Reset points to zero")
def reset_points(user_id: int, payload: PointsReset, db: Session = Depends(get_db)) -> DebitReceiptRead:
    try:
        with unit_of_work(db):
            receipt = ledger_service.reset_points(db, user_id=user_id, remark=payload.reason)
        return DebitReceiptRead.model_validate(receipt)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.put("", response_model=BalanceRead, summary="Set points to an exact balance")
def set_points(user_id: int, payload: PointsSet, db: Session = Depends(get_db)) -> BalanceRead:
    try:
        with unit_of_work(db):
            balance = ledger_service.set_points(
                db,
                user_id=user_id,
                target_amount=payload.target_amount,
                remark=payload.reason,
            )
        return BalanceRead(user_id=user_id, balance=balance)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post("/sweep", response_model=SweepResult, summary="Expire stale grants now")
def sweep_points(user_id: int, db: Session = Depends(get_db)) -> SweepResult:
    try:
        with unit_of_work(db):
            expired = ledger_service.expire_sweep(db, user_id=user_id)
            balance = ledger_service.live_balance(db, user_id)
        return SweepResult(user_id=user_id, expired_points=expired, balance=balance)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
