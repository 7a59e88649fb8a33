from __future__ import annotations

from datetime import datetime

from ..domain.errors import AuthorizationError, BookingNotFoundError, ValidationError
from ..domain.repositories import BookingRepository, SlotRepository, SubscriptionRepository, VenueRepository
from ..domain.services import BookingAction, QuotaAction, next_status
from ..models import Booking, BookingStatus, CancelledBy, Venue
from ..utils.notifications import NotificationEvent, NotificationOutbox
from ..utils.time import utc_now_naive
from . import quota as quota_usecase
from . import slots as slot_usecase


async def _load(booking_repo: BookingRepository, booking_id: int) -> Booking:
    booking = await booking_repo.get_for_update(booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)
    return booking


async def _owned_venue(venue_repo: VenueRepository, booking: Booking, owner_id: int) -> Venue:
    venue = await venue_repo.get_venue(booking.venue_id)
    if venue is None or venue.owner_id != owner_id:
        raise AuthorizationError("you do not own the venue of this booking")
    return venue


def _apply(booking: Booking, status: BookingStatus, now: datetime) -> None:
    booking.status = status
    booking.version += 1
    booking.updated_at = now
    if status == BookingStatus.CONFIRMED:
        booking.confirmed_at = now
    else:
        booking.closed_at = now


def _payload(booking: Booking, **extra: object) -> dict[str, object]:
    payload: dict[str, object] = {
        "booking_code": booking.code,
        "status": str(booking.status),
        "amount": str(booking.amount),
        "venue_id": booking.venue_id,
        "court_id": booking.court_id,
        "slot_ids": booking.slot_ids,
    }
    payload.update(extra)
    return payload


async def approve_booking(
    booking_repo: BookingRepository,
    venue_repo: VenueRepository,
    sub_repo: SubscriptionRepository,
    outbox: NotificationOutbox,
    *,
    booking_id: int,
    acting_owner_id: int,
    now: datetime | None = None,
) -> tuple[Booking, BookingStatus]:
    now = now or utc_now_naive()
    booking = await _load(booking_repo, booking_id)
    venue = await _owned_venue(venue_repo, booking, acting_owner_id)
    previous = booking.status
    target = next_status(booking.id, previous, BookingAction.APPROVE)

    await quota_usecase.check_and_consume(
        sub_repo,
        venue_repo,
        owner_id=venue.owner_id,
        action=QuotaAction.ACCEPT_BOOKING,
        now=now,
    )
    _apply(booking, target, now)
    await booking_repo.save(booking)
    outbox.add(
        NotificationEvent(
            event="booking_confirmed",
            booking_id=booking.id,
            recipient_user_id=booking.user_id,
            payload=_payload(booking),
        )
    )
    return booking, previous


async def reject_booking(
    booking_repo: BookingRepository,
    venue_repo: VenueRepository,
    slot_repo: SlotRepository,
    outbox: NotificationOutbox,
    *,
    booking_id: int,
    acting_owner_id: int,
    reason: str,
    now: datetime | None = None,
) -> tuple[Booking, BookingStatus]:
    now = now or utc_now_naive()
    booking = await _load(booking_repo, booking_id)
    await _owned_venue(venue_repo, booking, acting_owner_id)
    previous = booking.status
    target = next_status(booking.id, previous, BookingAction.REJECT)
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason", "a rejection reason is required; it is the only explanation the player sees")

    _apply(booking, target, now)
    booking.rejection_reason = reason
    await booking_repo.save(booking)
    await slot_usecase.release(slot_repo, booking.slot_ids)
    outbox.add(
        NotificationEvent(
            event="booking_rejected",
            booking_id=booking.id,
            recipient_user_id=booking.user_id,
            payload=_payload(booking, reason=reason),
        )
    )
    return booking, previous


async def cancel_booking(
    booking_repo: BookingRepository,
    venue_repo: VenueRepository,
    slot_repo: SlotRepository,
    outbox: NotificationOutbox,
    *,
    booking_id: int,
    actor_id: int,
    acting_as: CancelledBy,
    now: datetime | None = None,
) -> tuple[Booking, BookingStatus]:
    now = now or utc_now_naive()
    booking = await _load(booking_repo, booking_id)
    if acting_as == CancelledBy.USER:
        if booking.user_id != actor_id:
            raise AuthorizationError("you can only cancel your own bookings")
        venue = await venue_repo.get_venue(booking.venue_id)
    else:
        venue = await _owned_venue(venue_repo, booking, actor_id)
    previous = booking.status
    target = next_status(booking.id, previous, BookingAction.CANCEL)

    _apply(booking, target, now)
    booking.cancelled_by = acting_as
    await booking_repo.save(booking)
    await slot_usecase.release(slot_repo, booking.slot_ids)

    # The other party is told.
    if acting_as == CancelledBy.USER:
        recipient = {"recipient_owner_id": venue.owner_id if venue else None}
    else:
        recipient = {"recipient_user_id": booking.user_id}
    outbox.add(
        NotificationEvent(
            event="booking_cancelled",
            booking_id=booking.id,
            payload=_payload(booking, cancelled_by=str(acting_as)),
            **recipient,
        )
    )
    return booking, previous


async def complete_booking(
    booking_repo: BookingRepository,
    venue_repo: VenueRepository,
    slot_repo: SlotRepository,
    *,
    booking_id: int,
    acting_owner_id: int | None = None,
    now: datetime | None = None,
) -> tuple[Booking, BookingStatus]:
    """Close a confirmed booking once its last slot has ended. Slots stay booked as history."""
    now = now or utc_now_naive()
    booking = await _load(booking_repo, booking_id)
    if acting_owner_id is not None:
        await _owned_venue(venue_repo, booking, acting_owner_id)
    previous = booking.status
    target = next_status(booking.id, previous, BookingAction.COMPLETE)

    slots = await slot_repo.list_by_ids(booking.slot_ids)
    last_end = max((slot.ends_at for slot in slots), default=None)
    if last_end is None or last_end > now:
        raise ValidationError("ends_at", "a booking can only be completed after its last slot has ended")

    _apply(booking, target, now)
    await booking_repo.save(booking)
    return booking, previous


async def complete_due_bookings(
    booking_repo: BookingRepository,
    *,
    now: datetime | None = None,
) -> list[Booking]:
    now = now or utc_now_naive()
    completed: list[Booking] = []
    for booking in await booking_repo.list_due_for_completion(now):
        _apply(booking, next_status(booking.id, booking.status, BookingAction.COMPLETE), now)
        completed.append(await booking_repo.save(booking))
    return completed
