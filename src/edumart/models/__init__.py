"""SQLAlchemy models for edumart."""

from .catalog import Category, Material
from .material_access import AccessType, MaterialAccess
from .membership import FULL_TIERS, MembershipGrant, MembershipTier
from .point_ledger import DebitReason, GrantSource, GrantStatus, PointDebit, PointGrant
from .semester_exchange import SemesterExchange
from .user import User

__all__ = [
    "AccessType",
    "Category",
    "DebitReason",
    "FULL_TIERS",
    "GrantSource",
    "GrantStatus",
    "Material",
    "MaterialAccess",
    "MembershipGrant",
    "MembershipTier",
    "PointDebit",
    "PointGrant",
    "SemesterExchange",
    "User",
]
