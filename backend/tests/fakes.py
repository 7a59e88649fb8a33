from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from venuebook.domain.errors import BookingCodeCollisionError
from venuebook.models import (
    AUTO_APPROVAL_FEATURE,
    AutoApprovalSetting,
    Booking,
    BookingSlot,
    BookingStatus,
    Court,
    Plan,
    Slot,
    SlotStatus,
    Sport,
    Subscription,
    SubscriptionStatus,
    Venue,
)


def utc_now_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class Seed:
    """Ids of the rows the sqlite integration fixture inserts."""

    owner_id: int
    player_id: int
    other_player_id: int
    venue_id: int
    court_id: int
    sport_id: int
    subscription_id: int
    slot_ids: list[int]


def make_slot(
    slot_id: int,
    *,
    court_id: int = 1,
    starts_at: Optional[datetime] = None,
    minutes: int = 60,
    price: Decimal = Decimal("500.00"),
    status: SlotStatus = SlotStatus.AVAILABLE,
) -> Slot:
    start = starts_at or (utc_now_naive().replace(microsecond=0) + timedelta(days=1, hours=slot_id))
    return Slot(
        id=slot_id,
        court_id=court_id,
        starts_at=start,
        ends_at=start + timedelta(minutes=minutes),
        price=price,
        status=status,
        created_at=start,
        updated_at=start,
    )


def make_plan(
    *,
    plan_id: int = 1,
    max_venues: int = 1,
    max_courts: int = 2,
    max_bookings: int = 10,
    unlimited_bookings: bool = False,
    max_messages: int = 5,
    unlimited_messages: bool = False,
    auto_approval: bool = False,
    price: Decimal = Decimal("999.00"),
    duration_days: int = 30,
) -> Plan:
    return Plan(
        id=plan_id,
        name=f"plan-{plan_id}",
        price=price,
        duration_days=duration_days,
        max_venues=max_venues,
        max_courts=max_courts,
        max_bookings=max_bookings,
        is_unlimited_bookings=unlimited_bookings,
        max_messages=max_messages,
        is_unlimited_messages=unlimited_messages,
        features=[AUTO_APPROVAL_FEATURE] if auto_approval else [],
        is_active=True,
    )


def make_subscription(
    plan: Plan,
    *,
    subscription_id: int = 1,
    owner_id: int = 10,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    bookings_count: int = 0,
    messages_count: int = 0,
    now: Optional[datetime] = None,
) -> Subscription:
    now = now or utc_now_naive()
    subscription = Subscription(
        id=subscription_id,
        owner_id=owner_id,
        plan_id=plan.id,
        starts_at=now - timedelta(days=1),
        ends_at=now + timedelta(days=plan.duration_days),
        status=status,
        bookings_count=bookings_count,
        messages_count=messages_count,
        cycle_started_at=now - timedelta(days=1),
        amount=plan.price,
        created_at=now,
        updated_at=now,
    )
    subscription.plan = plan
    return subscription


class FakeSlotRepo:
    def __init__(self, slots: Iterable[Slot] = ()) -> None:
        self.slots: dict[int, Slot] = {slot.id: slot for slot in slots}
        self.transitions: list[tuple[list[int], SlotStatus, SlotStatus]] = []

    async def list_for_court(
        self,
        court_id: int,
        start: Optional[datetime],
        end: Optional[datetime],
        status: Optional[SlotStatus] = None,
    ) -> list[Slot]:
        rows = [slot for slot in self.slots.values() if slot.court_id == court_id]
        if start is not None:
            rows = [slot for slot in rows if slot.starts_at >= start]
        if end is not None:
            rows = [slot for slot in rows if slot.ends_at <= end]
        if status is not None:
            rows = [slot for slot in rows if slot.status == status]
        return sorted(rows, key=lambda slot: slot.starts_at)

    async def list_by_ids(self, slot_ids: Iterable[int]) -> list[Slot]:
        return [self.slots[slot_id] for slot_id in sorted(slot_ids) if slot_id in self.slots]

    async def get_many_for_update(self, slot_ids: Iterable[int]) -> list[Slot]:
        return await self.list_by_ids(slot_ids)

    async def transition(
        self,
        slot_ids: Sequence[int],
        *,
        from_status: SlotStatus,
        to_status: SlotStatus,
        block_reason: Optional[str] = None,
    ) -> int:
        self.transitions.append((list(slot_ids), from_status, to_status))
        changed = 0
        for slot_id in slot_ids:
            slot = self.slots.get(slot_id)
            if slot is not None and slot.status == from_status:
                slot.status = to_status
                slot.block_reason = block_reason
                changed += 1
        return changed

    async def find_overlapping(self, court_id: int, starts_at: datetime, ends_at: datetime) -> list[Slot]:
        return [
            slot
            for slot in self.slots.values()
            if slot.court_id == court_id and slot.starts_at < ends_at and slot.ends_at > starts_at
        ]

    async def create_many(
        self,
        *,
        court_id: int,
        windows: Sequence[tuple[datetime, datetime, Decimal]],
    ) -> list[Slot]:
        created = []
        next_id = max(self.slots, default=0) + 1
        for starts_at, ends_at, price in windows:
            slot = make_slot(next_id, court_id=court_id, starts_at=starts_at, price=price)
            slot.ends_at = ends_at
            self.slots[next_id] = slot
            created.append(slot)
            next_id += 1
        return created


class FakeVenueRepo:
    def __init__(self) -> None:
        self.sports: dict[int, Sport] = {1: Sport(id=1, name="badminton"), 2: Sport(id=2, name="football")}
        self.venues: dict[int, Venue] = {}
        self.courts: dict[int, Court] = {}

    def add_venue(
        self,
        venue_id: int = 1,
        *,
        owner_id: int = 10,
        opens_at: Optional[time] = None,
        closes_at: Optional[time] = None,
    ) -> Venue:
        now = utc_now_naive()
        venue = Venue(
            id=venue_id,
            owner_id=owner_id,
            name=f"venue-{venue_id}",
            address="1 Main Road",
            city="Pune",
            opens_at=opens_at,
            closes_at=closes_at,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self.venues[venue_id] = venue
        return venue

    def add_court(
        self,
        court_id: int = 1,
        *,
        venue_id: int = 1,
        sport_id: int = 1,
        hourly_price: Decimal = Decimal("500.00"),
    ) -> Court:
        now = utc_now_naive()
        court = Court(
            id=court_id,
            venue_id=venue_id,
            sport_id=sport_id,
            name=f"court-{court_id}",
            hourly_price=hourly_price,
            capacity=4,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self.courts[court_id] = court
        return court

    async def get_sport(self, sport_id: int) -> Optional[Sport]:
        return self.sports.get(sport_id)

    async def get_venue(self, venue_id: int) -> Optional[Venue]:
        return self.venues.get(venue_id)

    async def get_court(self, court_id: int) -> Optional[Court]:
        return self.courts.get(court_id)

    async def count_active_venues(self, owner_id: int) -> int:
        return sum(1 for venue in self.venues.values() if venue.owner_id == owner_id and venue.is_active)

    async def count_active_courts(self, venue_id: int) -> int:
        return sum(1 for court in self.courts.values() if court.venue_id == venue_id and court.is_active)

    async def create_venue(
        self,
        *,
        owner_id: int,
        name: str,
        address: str,
        city: str,
        opens_at: Optional[time],
        closes_at: Optional[time],
    ) -> Venue:
        venue = self.add_venue(max(self.venues, default=0) + 1, owner_id=owner_id, opens_at=opens_at, closes_at=closes_at)
        venue.name, venue.address, venue.city = name, address, city
        return venue

    async def create_court(
        self,
        *,
        venue_id: int,
        sport_id: int,
        name: str,
        hourly_price: Decimal,
        capacity: int,
    ) -> Court:
        court = self.add_court(
            max(self.courts, default=0) + 1,
            venue_id=venue_id,
            sport_id=sport_id,
            hourly_price=hourly_price,
        )
        court.name, court.capacity = name, capacity
        return court


class FakeBookingRepo:
    def __init__(self, slot_repo: Optional[FakeSlotRepo] = None) -> None:
        self.bookings: dict[int, Booking] = {}
        self.slot_repo = slot_repo
        self.saved: list[int] = []

    async def create(
        self,
        *,
        code: str,
        user_id: int,
        venue_id: int,
        court_id: int,
        sport_id: int,
        slot_ids: Sequence[int],
        amount: Decimal,
        payment_proof_ref: Optional[str],
        utr: Optional[str],
    ) -> Booking:
        if any(booking.code == code for booking in self.bookings.values()):
            raise BookingCodeCollisionError(code)
        now = utc_now_naive()
        booking = Booking(
            id=max(self.bookings, default=0) + 1,
            code=code,
            user_id=user_id,
            venue_id=venue_id,
            court_id=court_id,
            sport_id=sport_id,
            amount=amount,
            status=BookingStatus.PENDING,
            payment_proof_ref=payment_proof_ref,
            utr=utr,
            version=1,
            created_at=now,
            updated_at=now,
        )
        booking.booking_slots = [
            BookingSlot(slot_id=slot_id, position=position) for position, slot_id in enumerate(slot_ids)
        ]
        self.bookings[booking.id] = booking
        return booking

    async def get(self, booking_id: int) -> Optional[Booking]:
        return self.bookings.get(booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[Booking]:
        return self.bookings.get(booking_id)

    async def get_by_code(self, code: str) -> Optional[Booking]:
        return next((booking for booking in self.bookings.values() if booking.code == code), None)

    async def list_by_user(self, user_id: int) -> list[Booking]:
        return [booking for booking in self.bookings.values() if booking.user_id == user_id]

    async def list_by_owner(self, owner_id: int, status: Optional[BookingStatus] = None) -> list[Booking]:
        raise NotImplementedError

    async def list_due_for_completion(self, now: datetime) -> list[Booking]:
        assert self.slot_repo is not None
        due = []
        for booking in self.bookings.values():
            if booking.status != BookingStatus.CONFIRMED:
                continue
            slots = await self.slot_repo.list_by_ids(booking.slot_ids)
            if slots and max(slot.ends_at for slot in slots) <= now:
                due.append(booking)
        return due

    async def save(self, booking: Booking) -> Booking:
        self.saved.append(booking.id)
        return booking


class FakeSubscriptionRepo:
    def __init__(self, subscriptions: Iterable[Subscription] = (), plans: Iterable[Plan] = ()) -> None:
        self.subscriptions: dict[int, Subscription] = {sub.id: sub for sub in subscriptions}
        self.plans: dict[int, Plan] = {plan.id: plan for plan in plans}
        self.settings: dict[int, AutoApprovalSetting] = {}
        self.resets = 0

    async def get_current(self, owner_id: int, *, for_update: bool = False) -> Optional[Subscription]:
        owned = sorted(
            (sub for sub in self.subscriptions.values() if sub.owner_id == owner_id),
            key=lambda sub: sub.id,
            reverse=True,
        )
        for sub in owned:
            if sub.status == SubscriptionStatus.ACTIVE:
                return sub
        return owned[0] if owned else None

    async def get_for_update(self, subscription_id: int) -> Optional[Subscription]:
        return self.subscriptions.get(subscription_id)

    async def get_plan(self, plan_id: int) -> Optional[Plan]:
        return self.plans.get(plan_id)

    async def reset_cycle(self, subscription: Subscription, now: datetime) -> Subscription:
        self.resets += 1
        subscription.bookings_count = 0
        subscription.messages_count = 0
        subscription.cycle_started_at = now
        return subscription

    async def increment_with_ceiling(self, subscription_id: int, counter: str, ceiling: Optional[int]) -> bool:
        subscription = self.subscriptions[subscription_id]
        current = getattr(subscription, counter)
        if ceiling is not None and current >= ceiling:
            return False
        setattr(subscription, counter, current + 1)
        return True

    async def create(
        self,
        *,
        owner_id: int,
        plan: Plan,
        status: SubscriptionStatus,
        payment_proof_ref: Optional[str],
        utr: Optional[str],
    ) -> Subscription:
        now = utc_now_naive()
        subscription = Subscription(
            id=max(self.subscriptions, default=0) + 1,
            owner_id=owner_id,
            plan_id=plan.id,
            status=status,
            bookings_count=0,
            messages_count=0,
            payment_proof_ref=payment_proof_ref,
            utr=utr,
            amount=plan.price,
            created_at=now,
            updated_at=now,
        )
        subscription.plan = plan
        self.subscriptions[subscription.id] = subscription
        return subscription

    async def expire_active(self, owner_id: int, *, keep_id: int) -> int:
        expired = 0
        for sub in self.subscriptions.values():
            if sub.owner_id == owner_id and sub.status == SubscriptionStatus.ACTIVE and sub.id != keep_id:
                sub.status = SubscriptionStatus.EXPIRED
                expired += 1
        return expired

    async def save(self, subscription: Subscription) -> Subscription:
        return subscription

    async def get_auto_approval(self, owner_id: int) -> Optional[AutoApprovalSetting]:
        return self.settings.get(owner_id)

    async def save_auto_approval(self, setting: AutoApprovalSetting) -> AutoApprovalSetting:
        self.settings[setting.owner_id] = setting
        return setting


class RecordingDispatcher:
    def __init__(self, fail_on: Iterable[str] = ()) -> None:
        self.fail_on = set(fail_on)
        self.sent: list[object] = []

    async def dispatch(self, event) -> None:  # type: ignore[no-untyped-def]
        if event.event in self.fail_on:
            raise RuntimeError(f"cannot deliver {event.event}")
        self.sent.append(event)
