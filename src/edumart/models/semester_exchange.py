"""Semester redemption records funded by the point ledger."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, text
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class SemesterExchange(Base):
    """A user's redemption of one semester; at most one active row per pair."""

    __tablename__ = "semester_exchanges"
    __table_args__ = (
        CheckConstraint("points_spent > 0", name="semester_exchanges_points_positive"),
        Index(
            "uq_semester_exchanges_active",
            "user_id",
            "semester_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    semester_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    points_spent = Column(Integer, nullable=False)
    debit_id = Column(Integer, ForeignKey("point_debits.id", ondelete="RESTRICT"), nullable=False)
    exchanged_at = Column(DateTime, default=utcnow, nullable=False)
    active = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="exchanges")
    semester = relationship("Category")
    debit = relationship("PointDebit")
    access_records = relationship("MaterialAccess", back_populates="exchange")
