"""Endpoints for membership tiers."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ...core.database import get_db, unit_of_work
from ...core.errors import EntitlementError
from ...schemas import (
    MembershipExtend,
    MembershipGrantCreate,
    MembershipGrantRead,
    MembershipHistoryRead,
    MembershipStatusRead,
)
from ...services import membership_service

router = APIRouter(prefix="/users/{user_id}/memberships", tags=["memberships"])


@router.get("/current", response_model=MembershipStatusRead, summary="Resolve the current tier")
def get_current(user_id: int, db: Session = Depends(get_db)) -> MembershipStatusRead:
    try:
        return MembershipStatusRead.model_validate(membership_service.get_current_membership(db, user_id=user_id))
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.get("", response_model=List[MembershipHistoryRead], summary="Membership history")
def list_memberships(user_id: int, db: Session = Depends(get_db)) -> List[MembershipHistoryRead]:
    try:
        entries = membership_service.list_memberships(db, user_id=user_id)
        return [MembershipHistoryRead.model_validate(entry) for entry in entries]
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post(
    "",
    response_model=MembershipGrantRead,
    status_code=status.HTTP_201_CREATED,
    summary="Grant a membership tier",
    responses={400: {"description": "Invalid tier or duration"}, 404: {"description": "User not found"}},
)
def grant_membership(
    user_id: int,
    payload: MembershipGrantCreate,
    db: Session = Depends(get_db),
) -> MembershipGrantRead:
    """Append a tier grant that supersedes the user's current tier.

    Example request body::

        {
            "tier": "primary_full",
            "duration_days": 365,
            "reason": "membership order 20260103-0002"
        }
    """

    try:
        with unit_of_work(db):
            grant = membership_service.grant_membership(
                db,
                user_id=user_id,
                tier=payload.tier,
                duration_days=payload.duration_days,
                remark=payload.reason,
            )
        db.refresh(grant)
        return grant
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


@router.post("/extend", response_model=MembershipGrantRead, summary="Extend the current membership")
def extend_membership(
    user_id: int,
    payload: MembershipExtend,
    db: Session = Depends(get_db),
) -> MembershipGrantRead:
    try:
        with unit_of_work(db):
            grant = membership_service.extend_membership(
                db,
                user_id=user_id,
                additional_days=payload.additional_days,
                remark=payload.reason,
            )
        db.refresh(grant)
        return grant
    except EntitlementError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc
