"""Public schema exports."""

from .access import AccessCheckRequest, AccessDecisionRead, AccessRecordRead, PurchaseRecordCreate
from .exchange import ExchangeCreate, ExchangedSemesterRead, ExchangeReceiptRead, SemesterOfferRead
from .membership import (
    MembershipExtend,
    MembershipGrantCreate,
    MembershipGrantRead,
    MembershipHistoryRead,
    MembershipStatusRead,
)
from .points import (
    ActiveGrantRead,
    BalanceRead,
    DebitReceiptRead,
    GrantReceiptRead,
    LedgerEntryRead,
    LedgerPageRead,
    PointsAdd,
    PointsDeduct,
    PointsReset,
    PointsSet,
    PointsSummaryRead,
    SweepResult,
)

__all__ = [
    "AccessCheckRequest",
    "AccessDecisionRead",
    "AccessRecordRead",
    "ActiveGrantRead",
    "BalanceRead",
    "DebitReceiptRead",
    "ExchangeCreate",
    "ExchangeReceiptRead",
    "ExchangedSemesterRead",
    "GrantReceiptRead",
    "LedgerEntryRead",
    "LedgerPageRead",
    "MembershipExtend",
    "MembershipGrantCreate",
    "MembershipGrantRead",
    "MembershipHistoryRead",
    "MembershipStatusRead",
    "PointsAdd",
    "PointsDeduct",
    "PointsReset",
    "PointsSet",
    "PointsSummaryRead",
    "PurchaseRecordCreate",
    "SemesterOfferRead",
    "SweepResult",
]
