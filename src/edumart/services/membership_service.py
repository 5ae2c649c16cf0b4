"""Membership history and current-tier resolution.

The grant history is the only record of a user's tier. The current tier is
derived at read time: the most recently created grant that is perpetual,
not yet expired, or of a full tier. Full tiers are a one-time unlock and
keep resolving after their stored expiry date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import InvalidAmount, InvalidTier, NoActiveMembership, UserNotFound
from ..models import FULL_TIERS, MembershipGrant, MembershipTier, User
from ..utils.datetime import as_naive_utc, expiry_after

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MembershipStatus:
    user_id: int
    tier: MembershipTier
    grant_id: Optional[int]
    start_at: Optional[datetime]
    expiry_at: Optional[datetime]
    # True for a full tier resolved past its stored expiry.
    past_expiry: bool = False


@dataclass(frozen=True)
class MembershipHistoryEntry:
    grant_id: int
    tier: MembershipTier
    start_at: datetime
    expiry_at: Optional[datetime]
    created_at: datetime
    remark: Optional[str]
    is_active: bool
    is_current: bool


def parse_tier(value) -> MembershipTier:
    try:
        return MembershipTier(value)
    except ValueError as exc:
        raise InvalidTier(f"Unknown membership tier {value!r}.") from exc


def is_in_force(grant: MembershipGrant, now: datetime) -> bool:
    if grant.tier in FULL_TIERS:
        return True
    return grant.expiry_at is None or grant.expiry_at > now


def _newest_first(grants: Iterable[MembershipGrant]) -> List[MembershipGrant]:
    return sorted(grants, key=lambda grant: (grant.created_at, grant.id), reverse=True)


def resolve_current_grant(grants: Iterable[MembershipGrant], now: datetime) -> Optional[MembershipGrant]:
    """Pick the authoritative grant; later grants supersede, they never stack."""

    for grant in _newest_first(grants):
        if is_in_force(grant, now):
            return grant
    return None


def load_grants(session: Session, user_id: int) -> Sequence[MembershipGrant]:
    stmt = (
        select(MembershipGrant)
        .where(MembershipGrant.user_id == user_id)
        .order_by(MembershipGrant.created_at.desc(), MembershipGrant.id.desc())
    )
    return session.execute(stmt).scalars().all()


def current_tier(session: Session, user_id: int, *, now: datetime | None = None) -> MembershipTier:
    grant = resolve_current_grant(load_grants(session, user_id), as_naive_utc(now))
    return grant.tier if grant is not None else MembershipTier.NONE


def _ensure_user(session: Session, user_id: int, *, lock: bool = False) -> User:
    stmt = select(User).where(User.id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    user = session.execute(stmt).scalar_one_or_none()
    if user is None:
        raise UserNotFound(user_id)
    return user


def get_current_membership(session: Session, *, user_id: int, now: datetime | None = None) -> MembershipStatus:
    now = as_naive_utc(now)
    _ensure_user(session, user_id)
    grant = resolve_current_grant(load_grants(session, user_id), now)
    if grant is None:
        return MembershipStatus(user_id=user_id, tier=MembershipTier.NONE, grant_id=None, start_at=None, expiry_at=None)
    return MembershipStatus(
        user_id=user_id,
        tier=grant.tier,
        grant_id=grant.id,
        start_at=grant.start_at,
        expiry_at=grant.expiry_at,
        past_expiry=grant.expiry_at is not None and grant.expiry_at <= now,
    )


def list_memberships(
    session: Session,
    *,
    user_id: int,
    now: datetime | None = None,
) -> List[MembershipHistoryEntry]:
    now = as_naive_utc(now)
    _ensure_user(session, user_id)
    grants = load_grants(session, user_id)
    current = resolve_current_grant(grants, now)
    return [
        MembershipHistoryEntry(
            grant_id=grant.id,
            tier=grant.tier,
            start_at=grant.start_at,
            expiry_at=grant.expiry_at,
            created_at=grant.created_at,
            remark=grant.remark,
            is_active=is_in_force(grant, now),
            is_current=current is not None and grant.id == current.id,
        )
        for grant in grants
    ]


def grant_membership(
    session: Session,
    *,
    user_id: int,
    tier,
    duration_days: Optional[int] = None,
    remark: Optional[str] = None,
    now: datetime | None = None,
) -> MembershipGrant:
    """Append a tier grant; ``duration_days=None`` makes it perpetual."""

    tier = parse_tier(tier)
    if duration_days is not None and duration_days <= 0:
        raise InvalidAmount(f"Membership duration must be positive, got {duration_days}.")

    now = as_naive_utc(now)
    _ensure_user(session, user_id, lock=True)
    grant = MembershipGrant(
        user_id=user_id,
        tier=tier,
        start_at=now,
        expiry_at=None if tier == MembershipTier.NONE else expiry_after(now, duration_days),
        remark=remark,
        created_at=now,
    )
    session.add(grant)
    session.flush()

    logger.info("granted %s membership to user %s until %s", tier.value, user_id, grant.expiry_at or "forever")
    return grant


def extend_membership(
    session: Session,
    *,
    user_id: int,
    additional_days: int,
    remark: Optional[str] = None,
    now: datetime | None = None,
) -> MembershipGrant:
    """Extend the current tier from the later of now and its current expiry."""

    if additional_days is None or additional_days <= 0:
        raise InvalidAmount(f"Extension must be a positive number of days, got {additional_days}.")

    now = as_naive_utc(now)
    _ensure_user(session, user_id, lock=True)
    current = resolve_current_grant(load_grants(session, user_id), now)
    if current is None or current.tier == MembershipTier.NONE:
        raise NoActiveMembership(f"User {user_id} has no membership to extend.")
    if current.expiry_at is None:
        return current

    base = max(current.expiry_at, now)
    extended = MembershipGrant(
        user_id=user_id,
        tier=current.tier,
        start_at=current.start_at,
        expiry_at=expiry_after(base, additional_days),
        remark=remark or f"extends grant {current.id}",
        created_at=now,
    )
    session.add(extended)
    session.flush()

    logger.info("extended %s membership for user %s to %s", current.tier.value, user_id, extended.expiry_at)
    return extended


def promote_to_points_tier(session: Session, *, user_id: int, now: datetime) -> Optional[MembershipGrant]:
    """Give a tier-less user the perpetual ``points`` tier; returns None otherwise."""

    if current_tier(session, user_id, now=now) != MembershipTier.NONE:
        return None
    grant = MembershipGrant(
        user_id=user_id,
        tier=MembershipTier.POINTS,
        start_at=now,
        expiry_at=None,
        remark="first point grant",
        created_at=now,
    )
    session.add(grant)
    session.flush()
    logger.info("promoted user %s to points tier", user_id)
    return grant
