from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest
from venuebook.domain.errors import AuthorizationError, SlotConflictError, SlotNotFoundError, ValidationError
from venuebook.models import SlotStatus
from venuebook.usecases import slots as uc

from tests.fakes import FakeSlotRepo, FakeVenueRepo, make_slot, utc_now_naive


def _venue_repo(owner_id: int = 10, **venue_kwargs: object) -> FakeVenueRepo:
    repo = FakeVenueRepo()
    repo.add_venue(1, owner_id=owner_id, **venue_kwargs)  # type: ignore[arg-type]
    repo.add_court(1, venue_id=1)
    return repo


@pytest.mark.asyncio
async def test_try_reserve_books_all_slots_in_request_order() -> None:
    repo = FakeSlotRepo([make_slot(1), make_slot(2), make_slot(3, price=Decimal("300.00"))])
    token = await uc.try_reserve(repo, [3, 1], court_id=1)
    assert token.slot_ids == [3, 1]
    assert token.total_price == Decimal("800.00")
    assert repo.slots[1].status == SlotStatus.BOOKED
    assert repo.slots[3].status == SlotStatus.BOOKED
    assert repo.slots[2].status == SlotStatus.AVAILABLE


@pytest.mark.asyncio
async def test_try_reserve_is_all_or_nothing_when_one_slot_taken() -> None:
    repo = FakeSlotRepo([make_slot(1), make_slot(2, status=SlotStatus.BOOKED), make_slot(3)])
    with pytest.raises(SlotConflictError) as excinfo:
        await uc.try_reserve(repo, [1, 2, 3])
    assert excinfo.value.slot_ids == [2]
    assert repo.slots[1].status == SlotStatus.AVAILABLE
    assert repo.slots[3].status == SlotStatus.AVAILABLE
    assert repo.transitions == []


@pytest.mark.asyncio
async def test_try_reserve_treats_blocked_as_unavailable() -> None:
    repo = FakeSlotRepo([make_slot(1, status=SlotStatus.BLOCKED)])
    with pytest.raises(SlotConflictError):
        await uc.try_reserve(repo, [1])


@pytest.mark.asyncio
async def test_try_reserve_reports_lost_race_on_short_update() -> None:
    class RacingRepo(FakeSlotRepo):
        async def transition(self, slot_ids, *, from_status, to_status, block_reason=None):  # type: ignore[no-untyped-def]
            # A concurrent writer took slot 2 between the read and the update.
            self.slots[2].status = SlotStatus.BOOKED
            return await super().transition(
                slot_ids, from_status=from_status, to_status=to_status, block_reason=block_reason
            )

    repo = RacingRepo([make_slot(1), make_slot(2)])
    with pytest.raises(SlotConflictError) as excinfo:
        await uc.try_reserve(repo, [1, 2])
    assert "someone else" in excinfo.value.message


@pytest.mark.asyncio
async def test_try_reserve_rejects_missing_slots() -> None:
    repo = FakeSlotRepo([make_slot(1)])
    with pytest.raises(SlotNotFoundError) as excinfo:
        await uc.try_reserve(repo, [1, 99])
    assert excinfo.value.slot_ids == [99]


@pytest.mark.asyncio
@pytest.mark.parametrize("slot_ids", [[], [1, 1], [0]])
async def test_try_reserve_rejects_bad_id_lists(slot_ids: list[int]) -> None:
    repo = FakeSlotRepo([make_slot(1)])
    with pytest.raises(ValidationError):
        await uc.try_reserve(repo, slot_ids)


@pytest.mark.asyncio
async def test_try_reserve_rejects_mixed_courts() -> None:
    repo = FakeSlotRepo([make_slot(1, court_id=1), make_slot(2, court_id=2)])
    with pytest.raises(ValidationError) as excinfo:
        await uc.try_reserve(repo, [1, 2])
    assert excinfo.value.field == "slot_ids"


@pytest.mark.asyncio
async def test_try_reserve_rejects_started_slots() -> None:
    now = utc_now_naive()
    repo = FakeSlotRepo([make_slot(1, starts_at=now - timedelta(minutes=5))])
    with pytest.raises(ValidationError):
        await uc.try_reserve(repo, [1], starts_after=now)


@pytest.mark.asyncio
async def test_release_is_idempotent() -> None:
    repo = FakeSlotRepo([make_slot(1, status=SlotStatus.BOOKED), make_slot(2, status=SlotStatus.BLOCKED)])
    assert await uc.release(repo, [1, 2]) == 1
    assert await uc.release(repo, [1, 2]) == 0
    assert repo.slots[1].status == SlotStatus.AVAILABLE
    assert repo.slots[2].status == SlotStatus.BLOCKED


@pytest.mark.asyncio
async def test_get_availability_filters_by_status() -> None:
    repo = FakeSlotRepo([make_slot(1), make_slot(2, status=SlotStatus.BOOKED), make_slot(3, court_id=2)])
    rows = await uc.get_availability(repo, court_id=1, status=SlotStatus.AVAILABLE)
    assert [slot.id for slot in rows] == [1]
    with pytest.raises(ValidationError):
        now = utc_now_naive()
        await uc.get_availability(repo, court_id=1, start=now, end=now)


@pytest.mark.asyncio
async def test_block_requires_reason_and_ownership() -> None:
    repo = FakeSlotRepo([make_slot(1)])
    with pytest.raises(ValidationError):
        await uc.block(repo, _venue_repo(), owner_id=10, slot_ids=[1], reason="  ")
    with pytest.raises(AuthorizationError):
        await uc.block(repo, _venue_repo(), owner_id=99, slot_ids=[1], reason="maintenance")


@pytest.mark.asyncio
async def test_block_refuses_booked_slots_and_unblock_restores() -> None:
    repo = FakeSlotRepo([make_slot(1), make_slot(2, status=SlotStatus.BOOKED)])
    venues = _venue_repo()
    with pytest.raises(SlotConflictError):
        await uc.block(repo, venues, owner_id=10, slot_ids=[1, 2], reason="maintenance")
    await uc.block(repo, venues, owner_id=10, slot_ids=[1], reason="maintenance")
    assert repo.slots[1].status == SlotStatus.BLOCKED
    assert repo.slots[1].block_reason == "maintenance"
    await uc.unblock(repo, venues, owner_id=10, slot_ids=[1])
    assert repo.slots[1].status == SlotStatus.AVAILABLE
    assert repo.slots[1].block_reason is None


@pytest.mark.asyncio
async def test_create_slot_prorates_court_price() -> None:
    repo = FakeSlotRepo()
    start = datetime(2030, 1, 1, 10, 0)
    slot = await uc.create_slot(
        repo,
        _venue_repo(),
        owner_id=10,
        court_id=1,
        starts_at=start,
        ends_at=start + timedelta(minutes=90),
    )
    assert slot.price == Decimal("750.00")
    assert slot.status == SlotStatus.AVAILABLE


@pytest.mark.asyncio
async def test_create_slot_rejects_overlap_and_inverted_range() -> None:
    start = datetime(2030, 1, 1, 10, 0)
    repo = FakeSlotRepo([make_slot(1, starts_at=start)])
    with pytest.raises(ValidationError):
        await uc.create_slot(
            repo, _venue_repo(), owner_id=10, court_id=1, starts_at=start + timedelta(minutes=30), ends_at=start + timedelta(hours=2)
        )
    with pytest.raises(ValidationError):
        await uc.create_slot(repo, _venue_repo(), owner_id=10, court_id=1, starts_at=start, ends_at=start)


@pytest.mark.asyncio
async def test_generate_slots_covers_opening_hours() -> None:
    repo = FakeSlotRepo()
    venues = _venue_repo(opens_at=time(8, 0), closes_at=time(12, 0))
    slots = await uc.generate_slots(repo, venues, owner_id=10, court_id=1, day=date(2030, 3, 1), duration_minutes=60)
    assert len(slots) == 4
    assert all(b.starts_at == a.ends_at for a, b in zip(slots, slots[1:]))
    with pytest.raises(ValidationError):
        await uc.generate_slots(repo, venues, owner_id=10, court_id=1, day=date(2030, 3, 1))


@pytest.mark.asyncio
async def test_generate_slots_defaults_to_full_day() -> None:
    repo = FakeSlotRepo()
    slots = await uc.generate_slots(repo, _venue_repo(), owner_id=10, court_id=1, day=date(2030, 3, 2), duration_minutes=60)
    assert len(slots) == 17
