from datetime import datetime
from decimal import Decimal

import pytest
from venuebook.domain.errors import InvalidStateTransitionError
from venuebook.domain.services import (
    BookingAction,
    Limit,
    QuotaAction,
    evaluate_auto_approval,
    generate_booking_code,
    is_valid_booking_code,
    next_status,
    plan_limit,
)
from venuebook.models import AutoApprovalSetting, BookingStatus

from tests.fakes import make_plan


@pytest.mark.parametrize(
    ("current", "action", "expected"),
    [
        (BookingStatus.PENDING, BookingAction.APPROVE, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingAction.REJECT, BookingStatus.REJECTED),
        (BookingStatus.PENDING, BookingAction.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingAction.CANCEL, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingAction.COMPLETE, BookingStatus.COMPLETED),
    ],
)
def test_allowed_transitions(current: BookingStatus, action: BookingAction, expected: BookingStatus) -> None:
    assert next_status(1, current, action) == expected


@pytest.mark.parametrize("terminal", [BookingStatus.REJECTED, BookingStatus.CANCELLED, BookingStatus.COMPLETED])
@pytest.mark.parametrize("action", list(BookingAction))
def test_terminal_statuses_accept_no_action(terminal: BookingStatus, action: BookingAction) -> None:
    with pytest.raises(InvalidStateTransitionError) as excinfo:
        next_status(7, terminal, action)
    assert excinfo.value.status == terminal
    assert "already" in excinfo.value.message


def test_confirmed_booking_cannot_be_approved_or_rejected_again() -> None:
    for action in (BookingAction.APPROVE, BookingAction.REJECT):
        with pytest.raises(InvalidStateTransitionError):
            next_status(1, BookingStatus.CONFIRMED, action)


def test_limit_unlimited_allows_anything() -> None:
    limit = Limit.unlimited()
    assert limit.is_unlimited
    assert limit.allows(10_000)


def test_limit_ceiling_is_exclusive() -> None:
    limit = Limit.of(3)
    assert limit.allows(2)
    assert not limit.allows(3)


def test_limit_rejects_negative_ceiling() -> None:
    with pytest.raises(ValueError):
        Limit.of(-1)


def test_plan_limit_maps_unlimited_flags() -> None:
    plan = make_plan(max_bookings=5, unlimited_bookings=True, max_messages=2)
    assert plan_limit(plan, QuotaAction.ACCEPT_BOOKING).is_unlimited
    assert plan_limit(plan, QuotaAction.SEND_MESSAGE) == Limit.of(2)
    assert plan_limit(plan, QuotaAction.CREATE_VENUE) == Limit.of(plan.max_venues)
    assert plan_limit(plan, QuotaAction.CREATE_COURT) == Limit.of(plan.max_courts)


def test_booking_code_shape_and_check_char() -> None:
    code = generate_booking_code(datetime(2026, 10, 17, 9, 30), token=lambda: "x4k2p")
    assert code.startswith("BK20261017X4K2P")
    assert len(code) == 16
    assert is_valid_booking_code(code)


def test_booking_code_detects_typo() -> None:
    code = generate_booking_code(datetime(2026, 10, 17), token=lambda: "ABCDE")
    tampered = code[:-2] + ("F" if code[-2] != "F" else "G") + code[-1]
    assert not is_valid_booking_code(tampered)
    assert not is_valid_booking_code("XX" + code[2:])
    assert not is_valid_booking_code(code[:-1])


def test_random_booking_codes_are_valid() -> None:
    now = datetime(2026, 1, 2)
    codes = {generate_booking_code(now) for _ in range(50)}
    assert all(is_valid_booking_code(code) for code in codes)


def _setting(**kwargs: object) -> AutoApprovalSetting:
    values: dict[str, object] = {"owner_id": 10, "enabled": True, "require_payment_proof": True, "max_amount": None}
    values.update(kwargs)
    return AutoApprovalSetting(**values)


def test_auto_approval_requires_plan_feature() -> None:
    decision = evaluate_auto_approval(make_plan(), _setting(), amount=Decimal("100"), has_payment_proof=True)
    assert not decision.approved
    assert "plan" in decision.reason


def test_auto_approval_respects_owner_switch() -> None:
    plan = make_plan(auto_approval=True)
    assert not evaluate_auto_approval(plan, None, amount=Decimal("1"), has_payment_proof=True).approved
    decision = evaluate_auto_approval(plan, _setting(enabled=False), amount=Decimal("1"), has_payment_proof=True)
    assert not decision.approved


def test_auto_approval_checks_proof_and_amount() -> None:
    plan = make_plan(auto_approval=True)
    no_proof = evaluate_auto_approval(plan, _setting(), amount=Decimal("100"), has_payment_proof=False)
    assert not no_proof.approved
    too_much = evaluate_auto_approval(
        plan,
        _setting(max_amount=Decimal("500")),
        amount=Decimal("800"),
        has_payment_proof=True,
    )
    assert not too_much.approved
    ok = evaluate_auto_approval(
        plan,
        _setting(require_payment_proof=False, max_amount=Decimal("800")),
        amount=Decimal("800"),
        has_payment_proof=False,
    )
    assert ok.approved
