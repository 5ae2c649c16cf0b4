"""Point ledger: expiring grants consumed oldest-first.

Every mutation locks the user row and the user's active grant rows before
reading balances, so two debits for the same user cannot both spend the
same grant. Balances are always recomputed from the grant rows; the
``User.points`` column is only a cache of that sum.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.errors import InsufficientPoints, InvalidAmount, UserNotFound
from ..models import DebitReason, GrantSource, GrantStatus, PointDebit, PointGrant, User
from ..utils.datetime import as_naive_utc, days_remaining, expiry_after
from . import membership_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrantReceipt:
    grant_id: int
    amount: int
    expires_at: Optional[datetime]
    new_balance: int


@dataclass(frozen=True)
class DebitReceipt:
    """Outcome of a debit; ``debit_id`` is None when nothing was removed."""

    debit_id: Optional[int]
    amount: int
    new_balance: int


@dataclass(frozen=True)
class BalanceCheck:
    user_id: int
    cached: int
    live: int

    @property
    def consistent(self) -> bool:
        return self.cached == self.live


@dataclass(frozen=True)
class ActiveGrantView:
    grant_id: int
    amount: int
    source: GrantSource
    acquired_at: datetime
    expires_at: Optional[datetime]
    days_remaining: Optional[int]
    expiring_soon: bool


@dataclass(frozen=True)
class PointsSummary:
    user_id: int
    total_points: int
    expiring_soon_points: int
    active_grants: List[ActiveGrantView] = field(default_factory=list)

    @property
    def active_grant_count(self) -> int:
        return len(self.active_grants)


@dataclass(frozen=True)
class LedgerEntry:
    """One line of the combined grant/debit history; debits carry negative amounts."""

    kind: str
    entry_id: int
    amount: int
    label: str
    status: Optional[str]
    created_at: datetime
    expires_at: Optional[datetime]
    remark: Optional[str]


@dataclass(frozen=True)
class LedgerPage:
    entries: List[LedgerEntry]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.limit) if self.limit else 0


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise UserNotFound(user_id)
    return user


def user_lock_stmt(user_id: int):
    return select(User).where(User.id == user_id).with_for_update()


def lock_user(session: Session, user_id: int) -> User:
    """Load the user row with ``FOR UPDATE``; serializes all ledger writes per user."""

    user = session.execute(user_lock_stmt(user_id)).scalar_one_or_none()
    if user is None:
        raise UserNotFound(user_id)
    return user


def _spendable(now: datetime):
    # Grants past expiry count as zero even before a sweep marks them.
    return (
        PointGrant.status == GrantStatus.ACTIVE,
        or_(PointGrant.expires_at.is_(None), PointGrant.expires_at > now),
    )


def live_balance(session: Session, user_id: int, *, now: datetime | None = None) -> int:
    """Sum of active, unexpired grant amounts read straight from the grant rows."""

    now = as_naive_utc(now)
    stmt = select(func.coalesce(func.sum(PointGrant.amount), 0)).where(
        PointGrant.user_id == user_id,
        *_spendable(now),
    )
    return session.execute(stmt).scalar_one()


def _fifo_order():
    # Split remainders keep their root grant's place in line.
    return (
        PointGrant.acquired_at.asc(),
        func.coalesce(PointGrant.origin_id, PointGrant.id).asc(),
        PointGrant.id.asc(),
    )


def spendable_grants_lock_stmt(user_id: int, now: datetime):
    return (
        select(PointGrant)
        .where(PointGrant.user_id == user_id, *_spendable(now))
        .order_by(*_fifo_order())
        .with_for_update()
    )


def _lock_spendable_grants(session: Session, user_id: int, now: datetime) -> List[PointGrant]:
    return list(session.execute(spendable_grants_lock_stmt(user_id, now)).scalars().all())


def _refresh_balance(session: Session, user: User, now: datetime) -> int:
    session.flush()
    balance = live_balance(session, user.id, now=now)
    user.points = balance
    user.updated_at = now
    session.flush()
    return balance


def _grant(
    session: Session,
    user: User,
    *,
    amount: int,
    source: GrantSource,
    expiry_days: Optional[int],
    remark: Optional[str],
    now: datetime,
) -> PointGrant:
    first_stmt = select(PointGrant.id).where(PointGrant.user_id == user.id).limit(1)
    is_first_grant = session.execute(first_stmt).scalar_one_or_none() is None

    grant = PointGrant(
        user_id=user.id,
        amount=amount,
        source=source,
        status=GrantStatus.ACTIVE,
        acquired_at=now,
        expires_at=expiry_after(now, expiry_days),
        remark=remark,
        created_at=now,
        updated_at=now,
    )
    session.add(grant)
    session.flush()

    if is_first_grant:
        membership_service.promote_to_points_tier(session, user_id=user.id, now=now)

    return grant


def _consume(
    session: Session,
    user: User,
    *,
    amount: int,
    reason: DebitReason,
    remark: Optional[str],
    now: datetime,
) -> PointDebit:
    grants = _lock_spendable_grants(session, user.id, now)
    available = sum(grant.amount for grant in grants)
    if available < amount:
        raise InsufficientPoints(required=amount, available=available)

    debit = PointDebit(user_id=user.id, amount=amount, reason=reason, remark=remark, created_at=now)
    session.add(debit)
    session.flush()

    remaining = amount
    for grant in grants:
        if remaining <= 0:
            break
        grant.status = GrantStatus.USED
        grant.debit_id = debit.id
        grant.updated_at = now
        if grant.amount > remaining:
            # Split: the original row is closed and the rest lives on as a new grant.
            session.add(
                PointGrant(
                    user_id=user.id,
                    amount=grant.amount - remaining,
                    source=grant.source,
                    status=GrantStatus.ACTIVE,
                    acquired_at=grant.acquired_at,
                    expires_at=grant.expires_at,
                    parent_id=grant.id,
                    origin_id=grant.origin_id or grant.id,
                    remark=grant.remark,
                    created_at=now,
                    updated_at=now,
                )
            )
            remaining = 0
        else:
            remaining -= grant.amount

    session.flush()
    return debit


def _sweep(session: Session, user: User, now: datetime) -> int:
    stmt = (
        select(PointGrant)
        .where(
            PointGrant.user_id == user.id,
            PointGrant.status == GrantStatus.ACTIVE,
            PointGrant.expires_at.is_not(None),
            PointGrant.expires_at <= now,
        )
        .order_by(PointGrant.acquired_at.asc(), PointGrant.id.asc())
        .with_for_update()
    )
    expired = session.execute(stmt).scalars().all()
    total = sum(grant.amount for grant in expired)
    if total <= 0:
        return 0

    debit = PointDebit(user_id=user.id, amount=total, reason=DebitReason.EXPIRE, created_at=now)
    session.add(debit)
    session.flush()
    for grant in expired:
        grant.status = GrantStatus.EXPIRED
        grant.debit_id = debit.id
        grant.updated_at = now

    logger.info("expired %s points across %s grants for user %s", total, len(expired), user.id)
    return total


def add_points(
    session: Session,
    *,
    user_id: int,
    amount: int,
    source: GrantSource = GrantSource.PURCHASE,
    expiry_days: Optional[int] = None,
    remark: Optional[str] = None,
    now: datetime | None = None,
) -> GrantReceipt:
    """Credit ``amount`` points as a new grant; ``expiry_days=None`` never expires.

    The user's first grant promotes a tier of ``none`` to the ``points`` tier.
    """

    if amount is None or amount <= 0:
        raise InvalidAmount(f"Point amount must be positive, got {amount}.")
    if expiry_days is not None and expiry_days < 0:
        raise InvalidAmount(f"Expiry days must not be negative, got {expiry_days}.")

    now = as_naive_utc(now)
    user = lock_user(session, user_id)
    grant = _grant(
        session,
        user,
        amount=amount,
        source=GrantSource(source),
        expiry_days=expiry_days,
        remark=remark,
        now=now,
    )
    balance = _refresh_balance(session, user, now)

    logger.info("granted %s points (%s) to user %s, balance %s", amount, grant.source.value, user_id, balance)
    return GrantReceipt(grant_id=grant.id, amount=amount, expires_at=grant.expires_at, new_balance=balance)


def deduct_points(
    session: Session,
    *,
    user_id: int,
    amount: int,
    reason: DebitReason,
    remark: Optional[str] = None,
    now: datetime | None = None,
) -> DebitReceipt:
    """Remove ``amount`` points, consuming the oldest unexpired grants first."""

    if amount is None or amount <= 0:
        raise InvalidAmount(f"Point amount must be positive, got {amount}.")

    now = as_naive_utc(now)
    user = lock_user(session, user_id)
    try:
        debit = _consume(session, user, amount=amount, reason=DebitReason(reason), remark=remark, now=now)
    except InsufficientPoints as exc:
        logger.info("rejected debit of %s for user %s: %s available", amount, user_id, exc.available)
        raise
    balance = _refresh_balance(session, user, now)

    logger.info("debited %s points (%s) from user %s, balance %s", amount, debit.reason.value, user_id, balance)
    return DebitReceipt(debit_id=debit.id, amount=amount, new_balance=balance)


def expire_sweep(session: Session, *, user_id: int, now: datetime | None = None) -> int:
    """Mark grants past their expiry as expired and write one ``expire`` debit.

    Returns the number of points expired; a second call with nothing newly
    expired returns 0 and writes nothing.
    """

    now = as_naive_utc(now)
    user = lock_user(session, user_id)
    total = _sweep(session, user, now)
    _refresh_balance(session, user, now)
    return total


def reset_points(
    session: Session,
    *,
    user_id: int,
    remark: Optional[str] = None,
    now: datetime | None = None,
) -> DebitReceipt:
    """Zero the user's balance; a no-op when there is nothing to remove."""

    now = as_naive_utc(now)
    user = lock_user(session, user_id)
    balance = live_balance(session, user.id, now=now)
    if balance <= 0:
        _refresh_balance(session, user, now)
        return DebitReceipt(debit_id=None, amount=0, new_balance=0)

    debit = _consume(session, user, amount=balance, reason=DebitReason.RESET, remark=remark, now=now)
    new_balance = _refresh_balance(session, user, now)

    logger.info("reset %s points for user %s", balance, user_id)
    return DebitReceipt(debit_id=debit.id, amount=balance, new_balance=new_balance)


def set_points(
    session: Session,
    *,
    user_id: int,
    target_amount: int,
    remark: Optional[str] = None,
    now: datetime | None = None,
) -> int:
    """Administrative override bringing the balance to exactly ``target_amount``."""

    if target_amount is None or target_amount < 0:
        raise InvalidAmount(f"Target balance must not be negative, got {target_amount}.")

    now = as_naive_utc(now)
    user = lock_user(session, user_id)
    _sweep(session, user, now)
    session.flush()

    delta = target_amount - live_balance(session, user.id, now=now)
    if delta > 0:
        _grant(
            session,
            user,
            amount=delta,
            source=GrantSource.ADMIN_GRANT,
            expiry_days=None,
            remark=remark,
            now=now,
        )
    elif delta < 0:
        _consume(session, user, amount=-delta, reason=DebitReason.ADMIN_DEDUCTION, remark=remark, now=now)

    balance = _refresh_balance(session, user, now)
    logger.info("set points for user %s to %s (delta %s)", user_id, balance, delta)
    return balance


def sweep_all_expired(session: Session, *, now: datetime | None = None) -> dict[str, int]:
    """Run :func:`expire_sweep` for every user holding an expired active grant."""

    now = as_naive_utc(now)
    stmt = (
        select(PointGrant.user_id)
        .where(
            PointGrant.status == GrantStatus.ACTIVE,
            PointGrant.expires_at.is_not(None),
            PointGrant.expires_at <= now,
        )
        .distinct()
        .order_by(PointGrant.user_id)
    )
    user_ids = session.execute(stmt).scalars().all()

    summary = {"users_swept": 0, "points_expired": 0}
    for user_id in user_ids:
        summary["points_expired"] += expire_sweep(session, user_id=user_id, now=now)
        summary["users_swept"] += 1
    return summary


def verify_balance(session: Session, *, user_id: int, now: datetime | None = None) -> BalanceCheck:
    """Compare the cached balance with a fresh sum over the grant rows."""

    user = get_user(session, user_id)
    return BalanceCheck(user_id=user.id, cached=user.points, live=live_balance(session, user.id, now=now))


def debit_consumption(session: Session, debit_id: int) -> int:
    """Points actually taken from grants by a debit, net of split remainders."""

    consumed = session.execute(select(PointGrant).where(PointGrant.debit_id == debit_id)).scalars().all()
    if not consumed:
        return 0
    remainder_stmt = select(func.coalesce(func.sum(PointGrant.amount), 0)).where(
        PointGrant.parent_id.in_([grant.id for grant in consumed])
    )
    remainder = session.execute(remainder_stmt).scalar_one()
    return sum(grant.amount for grant in consumed) - remainder


def points_summary(session: Session, *, user_id: int, now: datetime | None = None) -> PointsSummary:
    """Sweep expired grants, then describe what is left and what expires soon."""

    now = as_naive_utc(now)
    expire_sweep(session, user_id=user_id, now=now)
    window = get_settings().expiring_soon_days

    stmt = (
        select(PointGrant)
        .where(PointGrant.user_id == user_id, *_spendable(now))
        .order_by(PointGrant.expires_at.is_(None), PointGrant.expires_at.asc(), PointGrant.id.asc())
    )
    views = []
    for grant in session.execute(stmt).scalars():
        remaining = days_remaining(grant.expires_at, now)
        views.append(
            ActiveGrantView(
                grant_id=grant.id,
                amount=grant.amount,
                source=grant.source,
                acquired_at=grant.acquired_at,
                expires_at=grant.expires_at,
                days_remaining=remaining,
                expiring_soon=remaining is not None and remaining <= window,
            )
        )

    return PointsSummary(
        user_id=user_id,
        total_points=sum(view.amount for view in views),
        expiring_soon_points=sum(view.amount for view in views if view.expiring_soon),
        active_grants=views,
    )


def list_ledger_entries(session: Session, *, user_id: int, page: int = 1, limit: int = 20) -> LedgerPage:
    """Grants and debits for a user, newest first."""

    get_user(session, user_id)
    page = max(page, 1)
    limit = max(1, min(limit, 100))

    grants = session.execute(select(PointGrant).where(PointGrant.user_id == user_id)).scalars().all()
    debits = session.execute(select(PointDebit).where(PointDebit.user_id == user_id)).scalars().all()

    entries = [
        LedgerEntry(
            kind="grant",
            entry_id=grant.id,
            amount=grant.amount,
            label=grant.source.value,
            status=grant.status.value,
            created_at=grant.created_at,
            expires_at=grant.expires_at,
            remark=grant.remark,
        )
        for grant in grants
    ]
    entries.extend(
        LedgerEntry(
            kind="debit",
            entry_id=debit.id,
            amount=-debit.amount,
            label=debit.reason.value,
            status=None,
            created_at=debit.created_at,
            expires_at=None,
            remark=debit.remark,
        )
        for debit in debits
    )
    entries.sort(key=lambda entry: (entry.created_at, entry.kind == "debit", entry.entry_id), reverse=True)

    offset = (page - 1) * limit
    return LedgerPage(entries=entries[offset : offset + limit], total=len(entries), page=page, limit=limit)
