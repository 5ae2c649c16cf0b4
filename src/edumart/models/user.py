"""Marketplace user model."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class User(Base):
    """Represents a marketplace account holding points and memberships.

    ``points`` is a cache of the live active-grant sum and is rewritten by the
    ledger service after every mutation.
    """

    __tablename__ = "users"
    __table_args__ = (CheckConstraint("points >= 0", name="users_points_non_negative"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    nickname = Column(String(100))
    points = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    point_grants = relationship("PointGrant", back_populates="user")
    point_debits = relationship("PointDebit", back_populates="user")
    memberships = relationship("MembershipGrant", back_populates="user")
    exchanges = relationship("SemesterExchange", back_populates="user")
    access_records = relationship("MaterialAccess", back_populates="user")
