from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Iterable, Sequence

from ..domain.errors import AuthorizationError, NotFoundError, SlotConflictError, SlotNotFoundError, ValidationError
from ..domain.repositories import SlotRepository, VenueRepository
from ..models import Court, Slot, SlotStatus
from ..utils.time import local_to_utc_naive

DEFAULT_OPENS_AT = time(6, 0)
DEFAULT_CLOSES_AT = time(23, 0)
_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ReservationToken:
    """Proof that every listed slot was flipped to booked inside the current unit of work."""

    court_id: int
    slots: tuple[Slot, ...]

    @property
    def slot_ids(self) -> list[int]:
        return [slot.id for slot in self.slots]

    @property
    def total_price(self) -> Decimal:
        return sum((slot.price for slot in self.slots), Decimal("0"))


def normalize_slot_ids(slot_ids: Iterable[int]) -> list[int]:
    """Validate a requested slot list and return it in request order."""
    ids = list(slot_ids)
    if not ids:
        raise ValidationError("slot_ids", "select at least one slot")
    if any(not isinstance(slot_id, int) or isinstance(slot_id, bool) or slot_id < 1 for slot_id in ids):
        raise ValidationError("slot_ids", "slot ids must be positive integers")
    if len(set(ids)) != len(ids):
        raise ValidationError("slot_ids", "the same slot was selected twice")
    return ids


async def get_availability(
    slot_repo: SlotRepository,
    *,
    court_id: int,
    start: datetime | None = None,
    end: datetime | None = None,
    status: SlotStatus | None = None,
) -> list[Slot]:
    if start is not None and end is not None and start >= end:
        raise ValidationError("start", "start must be earlier than end")
    return await slot_repo.list_for_court(court_id, start, end, status)


async def try_reserve(
    slot_repo: SlotRepository,
    slot_ids: Sequence[int],
    *,
    court_id: int | None = None,
    starts_after: datetime | None = None,
) -> ReservationToken:
    """
    Flip every requested slot from available to booked, or none of them.

    Slots are locked in id order, validated, then moved with a single conditional
    update. A shortfall in the updated row count means a concurrent request won the
    race; the raised SlotConflictError rolls the enclosing transaction back.
    """
    ids = normalize_slot_ids(slot_ids)
    slots = await slot_repo.get_many_for_update(ids)
    missing = set(ids) - {slot.id for slot in slots}
    if missing:
        raise SlotNotFoundError(missing)

    courts = {slot.court_id for slot in slots}
    if len(courts) > 1:
        raise ValidationError("slot_ids", "all slots of a booking must be on the same court")
    slot_court_id = courts.pop()
    if court_id is not None and slot_court_id != court_id:
        raise ValidationError("slot_ids", "slots do not belong to the selected court")
    if starts_after is not None:
        started = [slot.id for slot in slots if slot.starts_at <= starts_after]
        if started:
            raise ValidationError("slot_ids", f"slots {sorted(started)} have already started")

    unavailable = [slot.id for slot in slots if slot.status != SlotStatus.AVAILABLE]
    if unavailable:
        raise SlotConflictError(unavailable)

    updated = await slot_repo.transition(ids, from_status=SlotStatus.AVAILABLE, to_status=SlotStatus.BOOKED)
    if updated != len(ids):
        raise SlotConflictError(ids)

    by_id = {slot.id: slot for slot in slots}
    return ReservationToken(court_id=slot_court_id, slots=tuple(by_id[slot_id] for slot_id in ids))


async def release(slot_repo: SlotRepository, slot_ids: Sequence[int]) -> int:
    """Return booked slots to the pool. Safe to repeat; returns how many actually changed."""
    return await slot_repo.transition(list(slot_ids), from_status=SlotStatus.BOOKED, to_status=SlotStatus.AVAILABLE)


async def ensure_court_owner(venue_repo: VenueRepository, *, court_id: int, owner_id: int) -> Court:
    court = await venue_repo.get_court(court_id)
    if court is None:
        raise NotFoundError(f"court {court_id} not found")
    venue = await venue_repo.get_venue(court.venue_id)
    if venue is None or venue.owner_id != owner_id:
        raise AuthorizationError("you do not own this court")
    return court


async def _load_owned_slots(
    slot_repo: SlotRepository,
    venue_repo: VenueRepository,
    *,
    owner_id: int,
    slot_ids: Sequence[int],
) -> list[Slot]:
    ids = normalize_slot_ids(slot_ids)
    slots = await slot_repo.get_many_for_update(ids)
    missing = set(ids) - {slot.id for slot in slots}
    if missing:
        raise SlotNotFoundError(missing)
    for court_id in {slot.court_id for slot in slots}:
        await ensure_court_owner(venue_repo, court_id=court_id, owner_id=owner_id)
    return slots


async def block(
    slot_repo: SlotRepository,
    venue_repo: VenueRepository,
    *,
    owner_id: int,
    slot_ids: Sequence[int],
    reason: str,
) -> list[Slot]:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason", "a reason is required to block slots")
    slots = await _load_owned_slots(slot_repo, venue_repo, owner_id=owner_id, slot_ids=slot_ids)
    booked = [slot.id for slot in slots if slot.status == SlotStatus.BOOKED]
    if booked:
        raise SlotConflictError(booked, "booked slots cannot be blocked; cancel or reject the booking first")
    to_block = [slot.id for slot in slots if slot.status == SlotStatus.AVAILABLE]
    await slot_repo.transition(
        to_block,
        from_status=SlotStatus.AVAILABLE,
        to_status=SlotStatus.BLOCKED,
        block_reason=reason,
    )
    return slots


async def unblock(
    slot_repo: SlotRepository,
    venue_repo: VenueRepository,
    *,
    owner_id: int,
    slot_ids: Sequence[int],
) -> list[Slot]:
    slots = await _load_owned_slots(slot_repo, venue_repo, owner_id=owner_id, slot_ids=slot_ids)
    await slot_repo.transition(
        [slot.id for slot in slots],
        from_status=SlotStatus.BLOCKED,
        to_status=SlotStatus.AVAILABLE,
    )
    return slots


def prorated_price(hourly_price: Decimal, minutes: int) -> Decimal:
    return (hourly_price * Decimal(minutes) / Decimal(60)).quantize(_CENTS)


async def create_slot(
    slot_repo: SlotRepository,
    venue_repo: VenueRepository,
    *,
    owner_id: int,
    court_id: int,
    starts_at: datetime,
    ends_at: datetime,
    price: Decimal | None = None,
) -> Slot:
    if starts_at >= ends_at:
        raise ValidationError("starts_at", "starts_at must be earlier than ends_at")
    if price is not None and price < 0:
        raise ValidationError("price", "price cannot be negative")
    court = await ensure_court_owner(venue_repo, court_id=court_id, owner_id=owner_id)
    if await slot_repo.find_overlapping(court_id, starts_at, ends_at):
        raise ValidationError("starts_at", "slot overlaps an existing slot on this court")
    if price is None:
        minutes = int((ends_at - starts_at).total_seconds() // 60)
        price = prorated_price(court.hourly_price, minutes)
    created = await slot_repo.create_many(court_id=court_id, windows=[(starts_at, ends_at, price)])
    return created[0]


async def generate_slots(
    slot_repo: SlotRepository,
    venue_repo: VenueRepository,
    *,
    owner_id: int,
    court_id: int,
    day: date,
    duration_minutes: int = 60,
    price: Decimal | None = None,
) -> list[Slot]:
    """Create back-to-back slots across the venue's opening hours on `day` (venue local time)."""
    if duration_minutes < 15:
        raise ValidationError("duration_minutes", "slots must be at least 15 minutes long")
    if price is not None and price < 0:
        raise ValidationError("price", "price cannot be negative")
    court = await ensure_court_owner(venue_repo, court_id=court_id, owner_id=owner_id)
    venue = await venue_repo.get_venue(court.venue_id)
    opens_at = (venue.opens_at if venue else None) or DEFAULT_OPENS_AT
    closes_at = (venue.closes_at if venue else None) or DEFAULT_CLOSES_AT
    if opens_at >= closes_at:
        raise ValidationError("closes_at", "venue closing time must be after opening time")

    day_start = local_to_utc_naive(day, opens_at)
    day_end = local_to_utc_naive(day, closes_at)
    if await slot_repo.find_overlapping(court_id, day_start, day_end):
        raise ValidationError("day", "slots already exist for this date and court")

    slot_price = price if price is not None else prorated_price(court.hourly_price, duration_minutes)
    step = timedelta(minutes=duration_minutes)
    windows: list[tuple[datetime, datetime, Decimal]] = []
    cursor = day_start
    while cursor + step <= day_end:
        windows.append((cursor, cursor + step, slot_price))
        cursor += step
    if not windows:
        raise ValidationError("duration_minutes", "opening hours are shorter than one slot")
    return await slot_repo.create_many(court_id=court_id, windows=windows)
