"""Typed failures raised by the ledger, membership and entitlement services."""

from __future__ import annotations


class EntitlementError(Exception):
    """Base class for business failures surfaced to callers."""

    status_code = 400

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class InvalidAmount(EntitlementError):
    """Raised for non-positive point amounts or negative targets."""


class InsufficientPoints(EntitlementError):
    """Raised when a debit exceeds the available active balance."""

    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            f"Insufficient points: {required} required, {available} available "
            f"({required - available} short)."
        )
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> int:
        return self.required - self.available


class AlreadyExchanged(EntitlementError):
    """Raised when a semester already has an active exchange for the user."""

    status_code = 409


class UserNotFound(EntitlementError):
    status_code = 404

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class MaterialNotFound(EntitlementError):
    status_code = 404

    def __init__(self, material_id: int) -> None:
        super().__init__(f"Material {material_id} not found")
        self.material_id = material_id


class SemesterNotFound(EntitlementError):
    status_code = 404

    def __init__(self, semester_id: int) -> None:
        super().__init__(f"Semester {semester_id} not found")
        self.semester_id = semester_id


class InvalidTier(EntitlementError):
    """Raised for unknown membership tiers."""


class NoActiveMembership(EntitlementError):
    """Raised when extending a user who holds no membership."""


class TransactionConflict(EntitlementError):
    """Lock or serialization failure; nothing was persisted and the call may be retried."""

    status_code = 409
