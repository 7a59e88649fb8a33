from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Callable, Optional

from ..models import AUTO_APPROVAL_FEATURE, AutoApprovalSetting, BookingStatus, Plan
from .errors import InvalidStateTransitionError

_CODE_ALPHABET = string.digits + string.ascii_uppercase


class BookingAction(StrEnum):
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    COMPLETE = "complete"


class QuotaAction(StrEnum):
    CREATE_VENUE = "create_venue"
    CREATE_COURT = "create_court"
    ACCEPT_BOOKING = "accept_booking"
    SEND_MESSAGE = "send_message"


QUOTA_DIMENSIONS: dict[QuotaAction, str] = {
    QuotaAction.CREATE_VENUE: "venues",
    QuotaAction.CREATE_COURT: "courts",
    QuotaAction.ACCEPT_BOOKING: "bookings",
    QuotaAction.SEND_MESSAGE: "messages",
}

# (from_status, action) -> to_status
TRANSITIONS: dict[tuple[BookingStatus, BookingAction], BookingStatus] = {
    (BookingStatus.PENDING, BookingAction.APPROVE): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingAction.REJECT): BookingStatus.REJECTED,
    (BookingStatus.PENDING, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.COMPLETE): BookingStatus.COMPLETED,
}


def next_status(booking_id: int, current: BookingStatus, action: BookingAction) -> BookingStatus:
    """Return the status `action` leads to, or raise if `current` does not allow it."""
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise InvalidStateTransitionError(booking_id, str(current), str(action)) from None


@dataclass(frozen=True)
class Limit:
    """Either unlimited or a fixed ceiling. Replaces the -1 sentinel some plans use."""

    ceiling: Optional[int]

    @classmethod
    def unlimited(cls) -> "Limit":
        return cls(None)

    @classmethod
    def of(cls, ceiling: int) -> "Limit":
        if ceiling < 0:
            raise ValueError("limit must be >= 0")
        return cls(ceiling)

    @property
    def is_unlimited(self) -> bool:
        return self.ceiling is None

    def allows(self, current: int) -> bool:
        return self.ceiling is None or current < self.ceiling


def plan_limit(plan: Plan, action: QuotaAction) -> Limit:
    if action == QuotaAction.CREATE_VENUE:
        return Limit.of(plan.max_venues)
    if action == QuotaAction.CREATE_COURT:
        return Limit.of(plan.max_courts)
    if action == QuotaAction.ACCEPT_BOOKING:
        return Limit.unlimited() if plan.is_unlimited_bookings else Limit.of(plan.max_bookings)
    return Limit.unlimited() if plan.is_unlimited_messages else Limit.of(plan.max_messages)


def _check_char(body: str) -> str:
    total = 0
    for position, char in enumerate(body, start=1):
        total += position * _CODE_ALPHABET.index(char)
    return _CODE_ALPHABET[total % len(_CODE_ALPHABET)]


def generate_booking_code(
    now: datetime,
    *,
    token: Callable[[], str] | None = None,
) -> str:
    """BK + YYYYMMDD + 5 random base-36 chars + 1 check char, e.g. ``BK20261017X4K2P7``."""
    random_part = token() if token else "".join(secrets.choice(_CODE_ALPHABET) for _ in range(5))
    body = f"{now:%Y%m%d}{random_part.upper()}"
    return f"BK{body}{_check_char(body)}"


def is_valid_booking_code(code: str) -> bool:
    code = code.upper()
    if len(code) != 16 or not code.startswith("BK"):
        return False
    body, check = code[2:-1], code[-1]
    if any(char not in _CODE_ALPHABET for char in body):
        return False
    return _check_char(body) == check


@dataclass(frozen=True)
class AutoApprovalDecision:
    approved: bool
    reason: str


def evaluate_auto_approval(
    plan: Optional[Plan],
    setting: Optional[AutoApprovalSetting],
    *,
    amount: Decimal,
    has_payment_proof: bool,
) -> AutoApprovalDecision:
    """Pure check of whether a freshly created booking may skip manual review."""
    if plan is None or not plan.has_feature(AUTO_APPROVAL_FEATURE):
        return AutoApprovalDecision(False, "auto-approval not available in current plan")
    if setting is None or not setting.enabled:
        return AutoApprovalDecision(False, "auto-approval disabled by owner")
    if setting.require_payment_proof and not has_payment_proof:
        return AutoApprovalDecision(False, "payment proof missing")
    if setting.max_amount is not None and amount > setting.max_amount:
        return AutoApprovalDecision(False, f"amount {amount} exceeds limit of {setting.max_amount}")
    return AutoApprovalDecision(True, "all auto-approval checks passed")
