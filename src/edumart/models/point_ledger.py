"""Point ledger models: grants (credits) and debits."""

import enum

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


def _values(enum_cls):
    return [member.value for member in enum_cls]


class GrantSource(str, enum.Enum):
    """Provenance of a point grant."""

    PURCHASE = "purchase"
    ADMIN_GRANT = "admin_grant"
    EXCHANGE_REFUND = "exchange_refund"


class GrantStatus(str, enum.Enum):
    """Grant lifecycle: active -> used or active -> expired, never back."""

    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"


class DebitReason(str, enum.Enum):
    """Why points left a user's balance."""

    EXCHANGE = "exchange"
    ADMIN_DEDUCTION = "admin_deduction"
    RESET = "reset"
    EXPIRE = "expire"


class PointGrant(Base):
    """A single addition of points.

    Rows are never deleted and their amount never changes. A partially
    consumed grant is marked used and its remainder is written as a new
    active grant pointing back through ``parent_id``.
    """

    __tablename__ = "point_grants"
    __table_args__ = (
        CheckConstraint("amount > 0", name="point_grants_amount_positive"),
        Index("ix_point_grants_user_status_acquired", "user_id", "status", "acquired_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Integer, nullable=False)
    source = Column(SAEnum(GrantSource, name="grant_source", values_callable=_values), nullable=False)
    status = Column(
        SAEnum(GrantStatus, name="grant_status", values_callable=_values),
        nullable=False,
        default=GrantStatus.ACTIVE,
    )
    acquired_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime)
    parent_id = Column(Integer, ForeignKey("point_grants.id", ondelete="RESTRICT"))
    # Root of a split chain; None on the root itself.
    origin_id = Column(Integer, ForeignKey("point_grants.id", ondelete="RESTRICT"))
    debit_id = Column(Integer, ForeignKey("point_debits.id", ondelete="RESTRICT"))
    remark = Column(String(255))
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="point_grants")
    debit = relationship("PointDebit", back_populates="consumed_grants")


class PointDebit(Base):
    """Points removed from a user, backed by the grants it consumed."""

    __tablename__ = "point_debits"
    __table_args__ = (CheckConstraint("amount > 0", name="point_debits_amount_positive"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    amount = Column(Integer, nullable=False)
    reason = Column(SAEnum(DebitReason, name="debit_reason", values_callable=_values), nullable=False)
    remark = Column(String(255))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="point_debits")
    consumed_grants = relationship("PointGrant", back_populates="debit")
