"""Semester exchange: spend points to unlock every material in a semester."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..core.errors import AlreadyExchanged, InvalidAmount
from ..models import (
    AccessType,
    Category,
    DebitReason,
    Material,
    MaterialAccess,
    MembershipTier,
    SemesterExchange,
)
from ..utils.datetime import as_naive_utc
from . import ledger_service, membership_service
from .catalog_service import CategoryTree, SemesterCostPolicy, require_semester, semester_materials

logger = logging.getLogger(__name__)

CostFunction = Callable[[int], int]


@dataclass(frozen=True)
class ExchangeReceipt:
    exchange_id: int
    semester_id: int
    debit_id: int
    points_spent: int
    remaining_balance: int
    materials_unlocked: int


@dataclass(frozen=True)
class ExchangedSemester:
    exchange_id: int
    semester_id: int
    semester_name: Optional[str]
    points_spent: int
    exchanged_at: datetime


@dataclass(frozen=True)
class ExchangeStatus:
    exchanged: bool
    exchanged_at: Optional[datetime] = None
    points_spent: Optional[int] = None


def _active_exchange(session: Session, user_id: int, semester_id: int) -> Optional[SemesterExchange]:
    stmt = select(SemesterExchange).where(
        SemesterExchange.user_id == user_id,
        SemesterExchange.semester_id == semester_id,
        SemesterExchange.active.is_(True),
    )
    return session.execute(stmt).scalar_one_or_none()


def _is_active_exchange_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return "uq_semester_exchanges_active" in message or "semester_exchanges.user_id" in message


def _grant_exchange_access(
    session: Session,
    *,
    user_id: int,
    exchange: SemesterExchange,
    materials: Sequence[Material],
    expiry_at: Optional[datetime],
    now: datetime,
) -> int:
    if not materials:
        return 0
    existing_stmt = select(MaterialAccess).where(
        MaterialAccess.user_id == user_id,
        MaterialAccess.material_id.in_([material.id for material in materials]),
    )
    existing = {row.material_id: row for row in session.execute(existing_stmt).scalars()}

    for material in materials:
        record = existing.get(material.id)
        if record is None:
            record = MaterialAccess(user_id=user_id, material_id=material.id, created_at=now)
            session.add(record)
        record.access_type = AccessType.EXCHANGE
        record.expiry_at = expiry_at
        record.exchange_id = exchange.id
        record.updated_at = now
    session.flush()
    return len(materials)


def exchange_semester(
    session: Session,
    *,
    user_id: int,
    semester_id: int,
    cost_function: Optional[CostFunction] = None,
    now: datetime | None = None,
) -> ExchangeReceipt:
    """Debit the semester's cost and unlock all of its materials.

    The debit, the exchange row and the access rows are written in the
    caller's transaction; any failure must roll all three back together.
    """

    now = as_naive_utc(now)
    ledger_service.lock_user(session, user_id)

    if _active_exchange(session, user_id, semester_id) is not None:
        raise AlreadyExchanged(f"Semester {semester_id} is already exchanged by user {user_id}.")

    tree = CategoryTree.load(session)
    require_semester(tree, semester_id)
    cost = (cost_function or SemesterCostPolicy(session, tree))(semester_id)
    if cost <= 0:
        raise InvalidAmount(f"Exchange cost must be positive, got {cost}.")

    ledger_service.expire_sweep(session, user_id=user_id, now=now)
    debit = ledger_service.deduct_points(
        session,
        user_id=user_id,
        amount=cost,
        reason=DebitReason.EXCHANGE,
        remark=f"semester {semester_id}",
        now=now,
    )

    exchange = SemesterExchange(
        user_id=user_id,
        semester_id=semester_id,
        points_spent=cost,
        debit_id=debit.debit_id,
        exchanged_at=now,
        active=True,
    )
    session.add(exchange)
    try:
        session.flush()
    except IntegrityError as exc:
        if not _is_active_exchange_violation(exc):
            raise
        # A concurrent request exchanged the same semester first.
        raise AlreadyExchanged(f"Semester {semester_id} is already exchanged by user {user_id}.") from exc

    tier = membership_service.current_tier(session, user_id, now=now)
    expiry_at = None
    if tier != MembershipTier.POINTS:
        expiry_at = now + timedelta(days=get_settings().exchange_access_days)

    unlocked = _grant_exchange_access(
        session,
        user_id=user_id,
        exchange=exchange,
        materials=semester_materials(session, tree, semester_id),
        expiry_at=expiry_at,
        now=now,
    )

    logger.info(
        "user %s exchanged semester %s for %s points, %s materials unlocked",
        user_id,
        semester_id,
        cost,
        unlocked,
    )
    return ExchangeReceipt(
        exchange_id=exchange.id,
        semester_id=semester_id,
        debit_id=debit.debit_id,
        points_spent=cost,
        remaining_balance=debit.new_balance,
        materials_unlocked=unlocked,
    )


def list_exchanged_semesters(session: Session, *, user_id: int) -> List[ExchangedSemester]:
    ledger_service.get_user(session, user_id)
    stmt = (
        select(SemesterExchange, Category.name)
        .outerjoin(Category, Category.id == SemesterExchange.semester_id)
        .where(SemesterExchange.user_id == user_id, SemesterExchange.active.is_(True))
        .order_by(SemesterExchange.exchanged_at.desc(), SemesterExchange.id.desc())
    )
    return [
        ExchangedSemester(
            exchange_id=exchange.id,
            semester_id=exchange.semester_id,
            semester_name=name,
            points_spent=exchange.points_spent,
            exchanged_at=exchange.exchanged_at,
        )
        for exchange, name in session.execute(stmt).all()
    ]


def is_semester_exchanged(session: Session, *, user_id: int, semester_id: int) -> ExchangeStatus:
    exchange = _active_exchange(session, user_id, semester_id)
    if exchange is None:
        return ExchangeStatus(exchanged=False)
    return ExchangeStatus(exchanged=True, exchanged_at=exchange.exchanged_at, points_spent=exchange.points_spent)
