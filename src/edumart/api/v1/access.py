"""Endpoints for material access checks and purchase records."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ...core.database import get_db, unit_of_work
from ...core.errors import EntitlementError
from ...schemas import AccessCheckRequest, AccessDecisionRead, AccessRecordRead, PurchaseRecordCreate
from ...services import entitlement_service

router = APIRouter(prefix="/users/{user_id}/access", tags=["access"])


@router.post("/check", response_model=List[AccessDecisionRead], summary="Check access for several materials")
def check_access(
    user_id: int,
    payload: AccessCheckRequest,
    db: Session = Depends(get_db),
) -> List[AccessDecisionRead]:
    try:
        decisions = entitlement_service.can_access_many(db, user_id=user_id, materials=payload.material_ids)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return [
        AccessDecisionRead(material_id=decision.material_id, granted=decision.granted, reason=decision.reason.value)
        for decision in decisions.values()
    ]


@router.post(
    "/purchases",
    response_model=AccessRecordRead,
    status_code=status.HTTP_201_CREATED,
    summary="Record a paid material purchase",
)
def record_purchase(
    user_id: int,
    payload: PurchaseRecordCreate,
    db: Session = Depends(get_db),
) -> AccessRecordRead:
    try:
        with unit_of_work(db):
            record = entitlement_service.record_purchase(
                db,
                user_id=user_id,
                material_id=payload.material_id,
                expiry_days=payload.expiry_days,
            )
        db.refresh(record)
        return record
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.get("", response_model=List[AccessRecordRead], summary="Access records, newest first")
def list_access(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> List[AccessRecordRead]:
    try:
        records, _total = entitlement_service.list_access_records(db, user_id=user_id, page=page, limit=limit)
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
    return [AccessRecordRead.model_validate(record) for record in records]
