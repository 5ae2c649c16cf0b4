"""Read-only catalog models: the category tree and its materials."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String

from ..core.database import Base
from ..utils.datetime import utcnow


class Category(Base):
    """Node of the curriculum tree (grade -> semester -> subject -> ...)."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    level = Column(Integer, nullable=False)
    grade = Column(Integer)
    subject = Column(String(50))
    parent_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"))
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Material(Base):
    """A downloadable teaching material filed under a category."""

    __tablename__ = "materials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False)
    grade = Column(Integer)
    subject = Column(String(50))
    is_free = Column(Boolean, nullable=False, default=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="published")
    created_at = Column(DateTime, default=utcnow, nullable=False)
