"""Material entitlement resolution.

Access is decided by four checks in a fixed order, first match wins:

1. the material is free;
2. a direct access row exists that is perpetual, unexpired, or came from an
   exchange (exchange rows never lapse);
3. the current tier is a full tier covering the material's school range,
   whatever the grant's stored expiry;
4. the material's semester has an active exchange, whatever the current
   tier; an exchange unlocks the semester for good.

Resolution never writes and takes no locks.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..core.config import Settings, get_settings
from ..core.errors import InvalidAmount, MaterialNotFound
from ..models import (
    FULL_TIERS,
    AccessType,
    Material,
    MaterialAccess,
    MembershipGrant,
    MembershipTier,
    SemesterExchange,
)
from ..utils.datetime import as_naive_utc
from . import ledger_service, membership_service
from .catalog_service import CategoryTree, material_grade, material_semester_id

logger = logging.getLogger(__name__)

MaterialRef = Union[Material, int]


class AccessReason(str, enum.Enum):
    FREE = "free"
    DIRECT = "direct"
    FULL_MEMBERSHIP = "full_membership"
    EXCHANGE = "exchange"
    DENIED = "denied"


@dataclass(frozen=True)
class AccessDecision:
    material_id: int
    granted: bool
    reason: AccessReason


def school_tier(grade: Optional[int], settings: Settings | None = None) -> Optional[MembershipTier]:
    """Full tier whose school range contains ``grade``."""

    if grade is None:
        return None
    settings = settings or get_settings()
    if grade in settings.primary_grades:
        return MembershipTier.PRIMARY_FULL
    if grade in settings.junior_grades:
        return MembershipTier.JUNIOR_FULL
    return None


@dataclass
class AccessContext:
    """Snapshot of everything one user's access checks read."""

    user_id: int
    now: datetime
    tree: CategoryTree
    current_grant: Optional[MembershipGrant]
    exchanged_semesters: Set[int] = field(default_factory=set)
    access_rows: Dict[int, MaterialAccess] = field(default_factory=dict)
    settings: Settings = field(default_factory=get_settings)

    @classmethod
    def load(
        cls,
        session: Session,
        *,
        user_id: int,
        material_ids: Iterable[int],
        now: datetime,
    ) -> "AccessContext":
        ledger_service.get_user(session, user_id)
        grants = membership_service.load_grants(session, user_id)

        exchanged = session.execute(
            select(SemesterExchange.semester_id).where(
                SemesterExchange.user_id == user_id,
                SemesterExchange.active.is_(True),
            )
        ).scalars().all()

        ids = list(set(material_ids))
        rows: Dict[int, MaterialAccess] = {}
        if ids:
            access_stmt = select(MaterialAccess).where(
                MaterialAccess.user_id == user_id,
                MaterialAccess.material_id.in_(ids),
            )
            rows = {row.material_id: row for row in session.execute(access_stmt).scalars()}

        return cls(
            user_id=user_id,
            now=now,
            tree=CategoryTree.load(session),
            current_grant=membership_service.resolve_current_grant(grants, now),
            exchanged_semesters=set(exchanged),
            access_rows=rows,
        )

    @property
    def current_tier(self) -> MembershipTier:
        return self.current_grant.tier if self.current_grant is not None else MembershipTier.NONE


def _direct_row_valid(row: MaterialAccess, now: datetime) -> bool:
    if row.access_type == AccessType.EXCHANGE:
        return True
    return row.expiry_at is None or row.expiry_at >= now


def decide(context: AccessContext, material: Material) -> AccessDecision:
    """Apply the ordered access checks to one material."""

    if material.is_free:
        return AccessDecision(material.id, True, AccessReason.FREE)

    row = context.access_rows.get(material.id)
    if row is not None and _direct_row_valid(row, context.now):
        return AccessDecision(material.id, True, AccessReason.DIRECT)

    tier = context.current_tier
    if tier in FULL_TIERS and school_tier(material_grade(context.tree, material), context.settings) == tier:
        return AccessDecision(material.id, True, AccessReason.FULL_MEMBERSHIP)

    semester_id = material_semester_id(context.tree, material, context.settings)
    if semester_id is not None and semester_id in context.exchanged_semesters:
        return AccessDecision(material.id, True, AccessReason.EXCHANGE)

    return AccessDecision(material.id, False, AccessReason.DENIED)


def _load_materials(session: Session, refs: Sequence[MaterialRef]) -> List[Material]:
    wanted = [ref for ref in refs if not isinstance(ref, Material)]
    found: Dict[int, Material] = {}
    if wanted:
        stmt = select(Material).where(Material.id.in_(wanted))
        found = {material.id: material for material in session.execute(stmt).scalars()}

    materials = []
    for ref in refs:
        if isinstance(ref, Material):
            materials.append(ref)
        elif ref in found:
            materials.append(found[ref])
        else:
            raise MaterialNotFound(ref)
    return materials


def can_access_many(
    session: Session,
    *,
    user_id: int,
    materials: Iterable[MaterialRef],
    now: datetime | None = None,
) -> Dict[int, AccessDecision]:
    """Resolve access for many materials with a single preload of user state."""

    now = as_naive_utc(now)
    loaded = _load_materials(session, list(materials))
    context = AccessContext.load(session, user_id=user_id, material_ids=[m.id for m in loaded], now=now)
    return {material.id: decide(context, material) for material in loaded}


def explain_access(
    session: Session,
    *,
    user_id: int,
    material: MaterialRef,
    now: datetime | None = None,
) -> AccessDecision:
    material_id = material.id if isinstance(material, Material) else material
    return can_access_many(session, user_id=user_id, materials=[material], now=now)[material_id]


def can_access(
    session: Session,
    *,
    user_id: int,
    material: MaterialRef,
    now: datetime | None = None,
) -> bool:
    return explain_access(session, user_id=user_id, material=material, now=now).granted


def record_purchase(
    session: Session,
    *,
    user_id: int,
    material_id: int,
    expiry_days: Optional[int] = None,
    now: datetime | None = None,
) -> MaterialAccess:
    """Direct access write for a paid material order."""

    if expiry_days is not None and expiry_days <= 0:
        raise InvalidAmount(f"Access duration must be positive, got {expiry_days}.")

    now = as_naive_utc(now)
    ledger_service.get_user(session, user_id)
    if session.get(Material, material_id) is None:
        raise MaterialNotFound(material_id)

    stmt = select(MaterialAccess).where(
        MaterialAccess.user_id == user_id,
        MaterialAccess.material_id == material_id,
    )
    record = session.execute(stmt).scalar_one_or_none()
    if record is None:
        record = MaterialAccess(user_id=user_id, material_id=material_id, created_at=now)
        session.add(record)
    elif record.access_type == AccessType.EXCHANGE:
        # Exchange access never lapses; a purchase on top changes nothing.
        return record

    record.access_type = AccessType.DIRECT
    record.expiry_at = now + timedelta(days=expiry_days) if expiry_days is not None else None
    record.exchange_id = None
    record.updated_at = now
    session.flush()

    logger.info("recorded purchase of material %s for user %s", material_id, user_id)
    return record


def list_access_records(
    session: Session,
    *,
    user_id: int,
    page: int = 1,
    limit: int = 20,
) -> Tuple[Sequence[MaterialAccess], int]:
    ledger_service.get_user(session, user_id)
    page = max(page, 1)
    limit = max(1, min(limit, 100))

    total = session.execute(
        select(func.count(MaterialAccess.id)).where(MaterialAccess.user_id == user_id)
    ).scalar_one()
    stmt = (
        select(MaterialAccess)
        .where(MaterialAccess.user_id == user_id)
        .order_by(MaterialAccess.updated_at.desc(), MaterialAccess.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return session.execute(stmt).scalars().all(), total
