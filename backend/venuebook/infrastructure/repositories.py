from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal
from typing import Iterable, Sequence, cast

from sqlalchemy import CursorResult, Select, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import BookingCodeCollisionError
from ..domain.repositories import BookingRepository, SlotRepository, SubscriptionRepository, VenueRepository
from ..models import (
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
from ..utils.time import utc_now_naive


def _rowcount(result: object) -> int:
    return int(cast(CursorResult, result).rowcount or 0)


class SqlAlchemySlotRepository(SlotRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_for_court(
        self,
        court_id: int,
        start: datetime | None,
        end: datetime | None,
        status: SlotStatus | None = None,
    ) -> list[Slot]:
        stmt = select(Slot).where(Slot.court_id == court_id)
        if start is not None:
            stmt = stmt.where(Slot.starts_at >= start)
        if end is not None:
            stmt = stmt.where(Slot.ends_at <= end)
        if status is not None:
            stmt = stmt.where(Slot.status == status)
        rows = await self.session.scalars(stmt.order_by(Slot.starts_at))
        return list(rows.all())

    async def list_by_ids(self, slot_ids: Iterable[int]) -> list[Slot]:
        rows = await self.session.scalars(select(Slot).where(Slot.id.in_(list(slot_ids))).order_by(Slot.id))
        return list(rows.all())

    async def get_many_for_update(self, slot_ids: Iterable[int]) -> list[Slot]:
        # Rows are locked in ascending id order so two multi-slot requests cannot deadlock.
        stmt = (
            select(Slot)
            .where(Slot.id.in_(sorted(slot_ids)))
            .order_by(Slot.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def transition(
        self,
        slot_ids: Sequence[int],
        *,
        from_status: SlotStatus,
        to_status: SlotStatus,
        block_reason: str | None = None,
    ) -> int:
        if not slot_ids:
            return 0
        stmt = (
            update(Slot)
            .where(Slot.id.in_(list(slot_ids)), Slot.status == from_status)
            .values(status=to_status, block_reason=block_reason, updated_at=utc_now_naive())
            .execution_options(synchronize_session="evaluate")
        )
        return _rowcount(await self.session.execute(stmt))

    async def find_overlapping(self, court_id: int, starts_at: datetime, ends_at: datetime) -> list[Slot]:
        stmt = select(Slot).where(
            Slot.court_id == court_id,
            Slot.starts_at < ends_at,
            Slot.ends_at > starts_at,
        )
        rows = await self.session.scalars(stmt.order_by(Slot.starts_at))
        return list(rows.all())

    async def create_many(
        self,
        *,
        court_id: int,
        windows: Sequence[tuple[datetime, datetime, Decimal]],
    ) -> list[Slot]:
        now = utc_now_naive()
        slots = [
            Slot(
                court_id=court_id,
                starts_at=starts_at,
                ends_at=ends_at,
                price=price,
                status=SlotStatus.AVAILABLE,
                created_at=now,
                updated_at=now,
            )
            for starts_at, ends_at, price in windows
        ]
        self.session.add_all(slots)
        await self.session.flush()
        return slots


class SqlAlchemyVenueRepository(VenueRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_sport(self, sport_id: int) -> Sport | None:
        return await self.session.get(Sport, sport_id)

    async def get_venue(self, venue_id: int) -> Venue | None:
        return await self.session.get(Venue, venue_id)

    async def get_court(self, court_id: int) -> Court | None:
        return await self.session.get(Court, court_id)

    async def count_active_venues(self, owner_id: int) -> int:
        stmt = select(func.count(Venue.id)).where(Venue.owner_id == owner_id, Venue.is_active.is_(True))
        return int(await self.session.scalar(stmt) or 0)

    async def count_active_courts(self, venue_id: int) -> int:
        stmt = select(func.count(Court.id)).where(Court.venue_id == venue_id, Court.is_active.is_(True))
        return int(await self.session.scalar(stmt) or 0)

    async def create_venue(
        self,
        *,
        owner_id: int,
        name: str,
        address: str,
        city: str,
        opens_at: time | None,
        closes_at: time | None,
    ) -> Venue:
        now = utc_now_naive()
        venue = Venue(
            owner_id=owner_id,
            name=name,
            address=address,
            city=city,
            opens_at=opens_at,
            closes_at=closes_at,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self.session.add(venue)
        await self.session.flush()
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
        now = utc_now_naive()
        court = Court(
            venue_id=venue_id,
            sport_id=sport_id,
            name=name,
            hourly_price=hourly_price,
            capacity=capacity,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        self.session.add(court)
        await self.session.flush()
        return court


class SqlAlchemyBookingRepository(BookingRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

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
    ) -> Booking:
        if await self.session.scalar(select(Booking.id).where(Booking.code == code)) is not None:
            raise BookingCodeCollisionError(code)
        now = utc_now_naive()
        booking = Booking(
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
        self.session.add(booking)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            message = str(exc.orig)
            if "uq_bookings_code" in message or "bookings.code" in message:
                raise BookingCodeCollisionError(code) from exc
            raise
        return booking

    async def get(self, booking_id: int) -> Booking | None:
        return await self.session.get(Booking, booking_id)

    async def get_for_update(self, booking_id: int) -> Booking | None:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def get_by_code(self, code: str) -> Booking | None:
        return await self.session.scalar(select(Booking).where(Booking.code == code))

    async def list_by_user(self, user_id: int) -> list[Booking]:
        stmt = select(Booking).where(Booking.user_id == user_id).order_by(Booking.created_at.desc(), Booking.id.desc())
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_by_owner(self, owner_id: int, status: BookingStatus | None = None) -> list[Booking]:
        stmt: Select[tuple[Booking]] = (
            select(Booking)
            .join(Venue, Booking.venue_id == Venue.id)
            .where(Venue.owner_id == owner_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        if status is not None:
            stmt = stmt.where(Booking.status == status)
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def list_due_for_completion(self, now: datetime) -> list[Booking]:
        ended = (
            select(BookingSlot.booking_id)
            .join(Slot, Slot.id == BookingSlot.slot_id)
            .group_by(BookingSlot.booking_id)
            .having(func.max(Slot.ends_at) <= now)
        )
        stmt = (
            select(Booking)
            .where(Booking.status == BookingStatus.CONFIRMED, Booking.id.in_(ended))
            .order_by(Booking.id)
            .with_for_update()
        )
        rows = await self.session.scalars(stmt)
        return list(rows.all())

    async def save(self, booking: Booking) -> Booking:
        self.session.add(booking)
        await self.session.flush()
        return booking


class SqlAlchemySubscriptionRepository(SubscriptionRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_current(self, owner_id: int, *, for_update: bool = False) -> Subscription | None:
        """Newest active subscription, else the newest one of any status."""
        for only_active in (True, False):
            stmt = select(Subscription).where(Subscription.owner_id == owner_id)
            if only_active:
                stmt = stmt.where(Subscription.status == SubscriptionStatus.ACTIVE)
            stmt = stmt.order_by(Subscription.id.desc()).limit(1)
            if for_update:
                stmt = stmt.with_for_update().execution_options(populate_existing=True)
            subscription = await self.session.scalar(stmt)
            if subscription is not None:
                return subscription
        return None

    async def get_for_update(self, subscription_id: int) -> Subscription | None:
        stmt = (
            select(Subscription)
            .where(Subscription.id == subscription_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def get_plan(self, plan_id: int) -> Plan | None:
        return await self.session.get(Plan, plan_id)

    async def reset_cycle(self, subscription: Subscription, now: datetime) -> Subscription:
        subscription.bookings_count = 0
        subscription.messages_count = 0
        subscription.cycle_started_at = now
        subscription.updated_at = now
        return await self.save(subscription)

    async def increment_with_ceiling(self, subscription_id: int, counter: str, ceiling: int | None) -> bool:
        column = getattr(Subscription, counter)
        stmt = update(Subscription).where(Subscription.id == subscription_id)
        if ceiling is not None:
            stmt = stmt.where(column < ceiling)
        stmt = stmt.values({counter: column + 1, "updated_at": utc_now_naive()}).execution_options(
            synchronize_session="evaluate"
        )
        return _rowcount(await self.session.execute(stmt)) == 1

    async def create(
        self,
        *,
        owner_id: int,
        plan: Plan,
        status: SubscriptionStatus,
        payment_proof_ref: str | None,
        utr: str | None,
    ) -> Subscription:
        now = utc_now_naive()
        subscription = Subscription(
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
        self.session.add(subscription)
        await self.session.flush()
        return subscription

    async def expire_active(self, owner_id: int, *, keep_id: int) -> int:
        stmt = (
            update(Subscription)
            .where(
                Subscription.owner_id == owner_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
                Subscription.id != keep_id,
            )
            .values(status=SubscriptionStatus.EXPIRED, updated_at=utc_now_naive())
            .execution_options(synchronize_session="evaluate")
        )
        return _rowcount(await self.session.execute(stmt))

    async def save(self, subscription: Subscription) -> Subscription:
        self.session.add(subscription)
        await self.session.flush()
        return subscription

    async def get_auto_approval(self, owner_id: int) -> AutoApprovalSetting | None:
        return await self.session.get(AutoApprovalSetting, owner_id)

    async def save_auto_approval(self, setting: AutoApprovalSetting) -> AutoApprovalSetting:
        self.session.add(setting)
        await self.session.flush()
        return setting
