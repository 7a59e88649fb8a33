from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal
from typing import Iterable, Protocol, Sequence

from ..models import (
    AutoApprovalSetting,
    Booking,
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


class SlotRepository(Protocol):
    async def list_for_court(
        self,
        court_id: int,
        start: datetime | None,
        end: datetime | None,
        status: SlotStatus | None = None,
    ) -> list[Slot]: ...

    async def list_by_ids(self, slot_ids: Iterable[int]) -> list[Slot]: ...

    async def get_many_for_update(self, slot_ids: Iterable[int]) -> list[Slot]: ...

    async def transition(
        self,
        slot_ids: Sequence[int],
        *,
        from_status: SlotStatus,
        to_status: SlotStatus,
        block_reason: str | None = None,
    ) -> int: ...

    async def find_overlapping(self, court_id: int, starts_at: datetime, ends_at: datetime) -> list[Slot]: ...

    async def create_many(
        self,
        *,
        court_id: int,
        windows: Sequence[tuple[datetime, datetime, Decimal]],
    ) -> list[Slot]: ...


class VenueRepository(Protocol):
    async def get_sport(self, sport_id: int) -> Sport | None: ...

    async def get_venue(self, venue_id: int) -> Venue | None: ...

    async def get_court(self, court_id: int) -> Court | None: ...

    async def count_active_venues(self, owner_id: int) -> int: ...

    async def count_active_courts(self, venue_id: int) -> int: ...

    async def create_venue(
        self,
        *,
        owner_id: int,
        name: str,
        address: str,
        city: str,
        opens_at: time | None,
        closes_at: time | None,
    ) -> Venue: ...

    async def create_court(
        self,
        *,
        venue_id: int,
        sport_id: int,
        name: str,
        hourly_price: Decimal,
        capacity: int,
    ) -> Court: ...


class BookingRepository(Protocol):
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
        payment_proof_ref: str | None,
        utr: str | None,
    ) -> Booking: ...

    async def get(self, booking_id: int) -> Booking | None: ...

    async def get_for_update(self, booking_id: int) -> Booking | None: ...

    async def get_by_code(self, code: str) -> Booking | None: ...

    async def list_by_user(self, user_id: int) -> list[Booking]: ...

    async def list_by_owner(self, owner_id: int, status: BookingStatus | None = None) -> list[Booking]: ...

    async def list_due_for_completion(self, now: datetime) -> list[Booking]: ...

    async def save(self, booking: Booking) -> Booking: ...


class SubscriptionRepository(Protocol):
    async def get_current(self, owner_id: int, *, for_update: bool = False) -> Subscription | None: ...

    async def get_for_update(self, subscription_id: int) -> Subscription | None: ...

    async def get_plan(self, plan_id: int) -> Plan | None: ...

    async def reset_cycle(self, subscription: Subscription, now: datetime) -> Subscription: ...

    async def increment_with_ceiling(self, subscription_id: int, counter: str, ceiling: int | None) -> bool: ...

    async def create(
        self,
        *,
        owner_id: int,
        plan: Plan,
        status: SubscriptionStatus,
        payment_proof_ref: str | None,
        utr: str | None,
    ) -> Subscription: ...

    async def expire_active(self, owner_id: int, *, keep_id: int) -> int: ...

    async def save(self, subscription: Subscription) -> Subscription: ...

    async def get_auto_approval(self, owner_id: int) -> AutoApprovalSetting | None: ...

    async def save_auto_approval(self, setting: AutoApprovalSetting) -> AutoApprovalSetting: ...
