"""Membership tier grants."""

import enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class MembershipTier(str, enum.Enum):
    """Membership levels; see the entitlement resolver for what each unlocks."""

    SINGLE = "single"
    DOUBLE = "double"
    PRIMARY_FULL = "primary_full"
    JUNIOR_FULL = "junior_full"
    POINTS = "points"
    NONE = "none"


FULL_TIERS = frozenset({MembershipTier.PRIMARY_FULL, MembershipTier.JUNIOR_FULL})


class MembershipGrant(Base):
    """Append-only history of tiers held by a user; the latest valid row wins."""

    __tablename__ = "membership_grants"
    __table_args__ = (Index("ix_membership_grants_user_created", "user_id", "created_at"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    tier = Column(
        SAEnum(MembershipTier, name="membership_tier", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    start_at = Column(DateTime, nullable=False, default=utcnow)
    expiry_at = Column(DateTime)
    remark = Column(String(255))
    created_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="memberships")
