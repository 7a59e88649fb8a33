
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import AsyncIterator

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from venuebook.database import build_engine, build_sessionmaker
from venuebook.models import (
    Base,
    Court,
    Plan,
    Slot,
    SlotStatus,
    Sport,
    Subscription,
    SubscriptionStatus,
    User,
    UserRole,
    Venue,
)

from tests.fakes import Seed, utc_now_naive


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'venuebook.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def seed(session_factory: async_sessionmaker[AsyncSession]) -> Seed:
    now = utc_now_naive().replace(microsecond=0)
    prices = [Decimal("500.00"), Decimal("300.00"), Decimal("400.00"), Decimal("400.00")]
    async with session_factory() as session, session.begin():
        owner = User(email="owner@example.com", name="Owner", role=UserRole.OWNER, created_at=now, updated_at=now)
        player = User(email="player@example.com", name="Player", role=UserRole.USER, created_at=now, updated_at=now)
        other = User(email="other@example.com", name="Other", role=UserRole.USER, created_at=now, updated_at=now)
        sport = Sport(name="badminton")
        plan = Plan(
            name="Starter",
            price=Decimal("999.00"),
            duration_days=30,
            max_venues=1,
            max_courts=2,
            max_bookings=10,
            is_unlimited_bookings=False,
            max_messages=5,
            is_unlimited_messages=False,
            features=[],
            is_active=True,
        )
        session.add_all([owner, player, other, sport, plan])
        await session.flush()

        subscription = Subscription(
            owner_id=owner.id,
            plan_id=plan.id,
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=29),
            status=SubscriptionStatus.ACTIVE,
            bookings_count=0,
            messages_count=0,
            cycle_started_at=now - timedelta(days=1),
            amount=plan.price,
            created_at=now,
            updated_at=now,
        )
        venue = Venue(
            owner_id=owner.id,
            name="Smash Arena",
            address="MG Road",
            city="Pune",
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        session.add_all([subscription, venue])
        await session.flush()

        court = Court(
            venue_id=venue.id,
            sport_id=sport.id,
            name="Court 1",
            hourly_price=Decimal("500.00"),
            capacity=4,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        session.add(court)
        await session.flush()

        start = now + timedelta(days=1)
        slots = [
            Slot(
                court_id=court.id,
                starts_at=start + timedelta(hours=index),
                ends_at=start + timedelta(hours=index + 1),
                price=price,
                status=SlotStatus.AVAILABLE,
                created_at=now,
                updated_at=now,
            )
            for index, price in enumerate(prices)
        ]
        session.add_all(slots)
        await session.flush()

        return Seed(
            owner_id=owner.id,
            player_id=player.id,
            other_player_id=other.id,
            venue_id=venue.id,
            court_id=court.id,
            sport_id=sport.id,
            subscription_id=subscription.id,
            slot_ids=[slot.id for slot in slots],
        )
