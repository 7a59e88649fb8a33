from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Sequence

from ..domain.errors import BookingNotFoundError, NotFoundError, QuotaExceededError, SubscriptionInactiveError, ValidationError
from ..domain.repositories import BookingRepository, SlotRepository, SubscriptionRepository, VenueRepository
from ..domain.services import QuotaAction, evaluate_auto_approval, generate_booking_code, is_valid_booking_code
from ..models import Booking, BookingStatus, SubscriptionStatus
from ..utils.notifications import NotificationEvent, NotificationOutbox
from ..utils.time import utc_now_naive
from . import approvals as approval_usecase
from . import quota as quota_usecase
from . import slots as slot_usecase

logger = logging.getLogger(__name__)


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


async def create_booking(
    slot_repo: SlotRepository,
    venue_repo: VenueRepository,
    booking_repo: BookingRepository,
    sub_repo: SubscriptionRepository,
    outbox: NotificationOutbox,
    *,
    user_id: int,
    venue_id: int,
    court_id: int,
    sport_id: int,
    slot_ids: Sequence[int],
    payment_proof_ref: str | None = None,
    utr: str | None = None,
    now: datetime | None = None,
    code_factory: Callable[[datetime], str] = generate_booking_code,
) -> Booking:
    """
    Reserve one or more slots on a court and record a pending booking for them.

    Must run inside one transaction: the slot flip and the booking insert commit
    or roll back together, so a failure here never leaves slots booked without
    a booking that holds them.
    """
    now = now or utc_now_naive()
    ids = slot_usecase.normalize_slot_ids(slot_ids)

    court = await venue_repo.get_court(court_id)
    if court is None or not court.is_active:
        raise NotFoundError(f"court {court_id} not found")
    if court.venue_id != venue_id:
        raise ValidationError("court_id", "court does not belong to the selected venue")
    venue = await venue_repo.get_venue(venue_id)
    if venue is None or not venue.is_active:
        raise NotFoundError(f"venue {venue_id} not found")
    if court.sport_id != sport_id:
        raise ValidationError("sport_id", "this court is not set up for the selected sport")

    await quota_usecase.check(
        sub_repo,
        venue_repo,
        owner_id=venue.owner_id,
        action=QuotaAction.ACCEPT_BOOKING,
        now=now,
    )

    token = await slot_usecase.try_reserve(slot_repo, ids, court_id=court_id, starts_after=now)
    booking = await booking_repo.create(
        code=code_factory(now),
        user_id=user_id,
        venue_id=venue_id,
        court_id=court_id,
        sport_id=sport_id,
        slot_ids=token.slot_ids,
        amount=token.total_price,
        payment_proof_ref=_clean(payment_proof_ref),
        utr=_clean(utr),
    )

    payload = {
        "booking_code": booking.code,
        "status": str(booking.status),
        "amount": str(booking.amount),
        "venue_id": venue_id,
        "court_id": court_id,
        "slot_ids": token.slot_ids,
    }
    outbox.add(NotificationEvent(event="booking_created", booking_id=booking.id, recipient_user_id=user_id, payload=payload))
    outbox.add(
        NotificationEvent(event="booking_created", booking_id=booking.id, recipient_owner_id=venue.owner_id, payload=payload)
    )

    await _maybe_auto_approve(venue_repo, booking_repo, sub_repo, outbox, booking=booking, owner_id=venue.owner_id, now=now)
    return booking


async def _maybe_auto_approve(
    venue_repo: VenueRepository,
    booking_repo: BookingRepository,
    sub_repo: SubscriptionRepository,
    outbox: NotificationOutbox,
    *,
    booking: Booking,
    owner_id: int,
    now: datetime,
) -> bool:
    subscription = await sub_repo.get_current(owner_id)
    plan = subscription.plan if subscription and subscription.status == SubscriptionStatus.ACTIVE else None
    setting = await sub_repo.get_auto_approval(owner_id)
    decision = evaluate_auto_approval(
        plan,
        setting,
        amount=booking.amount,
        has_payment_proof=bool(booking.payment_proof_ref),
    )
    if not decision.approved:
        logger.debug("booking %s left for manual review: %s", booking.code, decision.reason)
        return False
    try:
        await approval_usecase.approve_booking(
            booking_repo,
            venue_repo,
            sub_repo,
            outbox,
            booking_id=booking.id,
            acting_owner_id=owner_id,
            now=now,
        )
    except (QuotaExceededError, SubscriptionInactiveError) as exc:
        logger.info("auto-approval skipped for booking %s: %s", booking.code, exc.message)
        return False
    return True


async def list_user_bookings(booking_repo: BookingRepository, *, user_id: int) -> list[Booking]:
    return await booking_repo.list_by_user(user_id)


async def get_user_booking(booking_repo: BookingRepository, *, booking_id: int, user_id: int) -> Booking:
    booking = await booking_repo.get(booking_id)
    # Another user's booking is reported as missing rather than forbidden.
    if booking is None or booking.user_id != user_id:
        raise BookingNotFoundError(booking_id)
    return booking


async def list_owner_bookings(
    booking_repo: BookingRepository,
    *,
    owner_id: int,
    status: BookingStatus | None = None,
) -> list[Booking]:
    return await booking_repo.list_by_owner(owner_id, status)


async def find_owner_booking_by_code(
    booking_repo: BookingRepository,
    venue_repo: VenueRepository,
    *,
    owner_id: int,
    code: str,
) -> Booking:
    """Look up a booking from the code a player shows at the venue."""
    code = (code or "").strip().upper()
    if not is_valid_booking_code(code):
        raise ValidationError("code", "this is not a valid booking code; check it for typos")
    booking = await booking_repo.get_by_code(code)
    if booking is not None:
        venue = await venue_repo.get_venue(booking.venue_id)
        if venue is not None and venue.owner_id == owner_id:
            return booking
    raise NotFoundError(f"booking {code} not found")
