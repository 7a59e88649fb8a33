from __future__ import annotations

from typing import Iterable, Optional


class DomainError(Exception):
    """Base class for business-rule failures surfaced to callers as typed errors."""

    code = "domain_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, object]:
        return {}


class ValidationError(DomainError):
    code = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field

    def details(self) -> dict[str, object]:
        return {"field": self.field}


class NotFoundError(DomainError):
    code = "not_found"


class SlotNotFoundError(NotFoundError):
    def __init__(self, slot_ids: Iterable[int]) -> None:
        self.slot_ids = sorted(slot_ids)
        super().__init__(f"slots not found: {self.slot_ids}")

    def details(self) -> dict[str, object]:
        return {"slot_ids": self.slot_ids}


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: int) -> None:
        super().__init__(f"booking {booking_id} not found")
        self.booking_id = booking_id


class SlotConflictError(DomainError):
    """Some requested slots are no longer available (usually taken by a concurrent request)."""

    code = "slots_unavailable"

    def __init__(self, slot_ids: Iterable[int], message: Optional[str] = None) -> None:
        self.slot_ids = sorted(slot_ids)
        super().__init__(message or "someone else just took these slots; refresh and pick again")

    def details(self) -> dict[str, object]:
        return {"slot_ids": self.slot_ids}


class InvalidStateTransitionError(DomainError):
    code = "invalid_state_transition"

    def __init__(self, booking_id: int, status: str, action: str) -> None:
        super().__init__(f"booking {booking_id} is already {status}; cannot {action} it")
        self.booking_id = booking_id
        self.status = status
        self.action = action

    def details(self) -> dict[str, object]:
        return {"booking_id": self.booking_id, "status": self.status, "action": self.action}


class AuthorizationError(DomainError):
    code = "forbidden"


class QuotaExceededError(DomainError):
    code = "quota_exceeded"

    def __init__(self, dimension: str, limit: int, current: int) -> None:
        super().__init__(
            f"your plan allows {limit} {dimension} and {current} are already used; upgrade your plan to continue"
        )
        self.dimension = dimension
        self.limit = limit
        self.current = current

    def details(self) -> dict[str, object]:
        return {"dimension": self.dimension, "limit": self.limit, "current": self.current}


class SubscriptionInactiveError(DomainError):
    code = "subscription_inactive"

    def __init__(self, owner_id: int, message: str = "no active subscription; renew your plan") -> None:
        super().__init__(message)
        self.owner_id = owner_id


class BookingCodeCollisionError(DomainError):
    code = "booking_code_collision"

    def __init__(self, booking_code: str) -> None:
        super().__init__(f"booking code {booking_code} already exists")
        self.booking_code = booking_code
