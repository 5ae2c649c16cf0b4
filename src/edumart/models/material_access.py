"""Direct access table: purchases and exchange-derived unlocks."""

import enum

from sqlalchemy import Column, DateTime, Enum as SAEnum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from ..core.database import Base
from ..utils.datetime import utcnow


class AccessType(str, enum.Enum):
    DIRECT = "direct"
    EXCHANGE = "exchange"


class MaterialAccess(Base):
    """One row per (user, material) pair; rewritten when access is re-granted."""

    __tablename__ = "material_access"
    __table_args__ = (UniqueConstraint("user_id", "material_id", name="material_access_unique"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    material_id = Column(Integer, ForeignKey("materials.id", ondelete="CASCADE"), nullable=False)
    access_type = Column(
        SAEnum(AccessType, name="access_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AccessType.DIRECT,
    )
    expiry_at = Column(DateTime)
    exchange_id = Column(Integer, ForeignKey("semester_exchanges.id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User", back_populates="access_records")
    material = relationship("Material")
    exchange = relationship("SemesterExchange", back_populates="access_records")
