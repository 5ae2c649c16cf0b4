"""Service layer exports."""

from . import (
    catalog_service,
    entitlement_service,
    exchange_service,
    ledger_service,
    membership_service,
)

__all__ = [
    "catalog_service",
    "entitlement_service",
    "exchange_service",
    "ledger_service",
    "membership_service",
]
