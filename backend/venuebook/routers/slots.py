from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session, require_owner
from ..domain.errors import DomainError
from ..infrastructure.repositories import SqlAlchemySlotRepository, SqlAlchemyVenueRepository
from ..models import SlotStatus
from ..schemas import SlotBlock, SlotCreate, SlotGenerate, SlotRead
from ..usecases import slots as slot_usecase
from ..utils.auth import Principal
from ..utils.time import to_utc_naive
from .errors import http_error

router = APIRouter(tags=["slots"])


def _require_tz(name: str, value: Optional[datetime]) -> None:
    if value is not None and value.tzinfo is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "validation_error", "field": name, "message": f"{name} must have a timezone"},
        )


@router.get("/courts/{court_id}/slots", response_model=List[SlotRead])
async def list_availability(
    court_id: int = Path(..., ge=1),
    start: Optional[datetime] = Query(default=None, description="start datetime with offset (ISO 8601)"),
    end: Optional[datetime] = Query(default=None, description="end datetime with offset (ISO 8601)"),
    slot_status: Optional[SlotStatus] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
) -> list[SlotRead]:
    _require_tz("start", start)
    _require_tz("end", end)
    slot_repo = SqlAlchemySlotRepository(session)
    try:
        slots = await slot_usecase.get_availability(
            slot_repo,
            court_id=court_id,
            start=to_utc_naive(start) if start else None,
            end=to_utc_naive(end) if end else None,
            status=slot_status,
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return [SlotRead.from_db(slot=slot) for slot in slots]


@router.post("/owner/courts/{court_id}/slots", response_model=SlotRead, status_code=status.HTTP_201_CREATED)
async def create_slot(
    payload: SlotCreate,
    court_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> SlotRead:
    _require_tz("starts_at", payload.starts_at)
    _require_tz("ends_at", payload.ends_at)
    slot_repo = SqlAlchemySlotRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    try:
        async with session.begin():
            slot = await slot_usecase.create_slot(
                slot_repo,
                venue_repo,
                owner_id=principal.user_id,
                court_id=court_id,
                starts_at=to_utc_naive(payload.starts_at),
                ends_at=to_utc_naive(payload.ends_at),
                price=payload.price,
            )
    except DomainError as exc:
        raise http_error(exc) from exc
    except IntegrityError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": "slot_exists", "message": "a slot already starts at this time on this court"},
        ) from exc
    return SlotRead.from_db(slot=slot)


@router.post(
    "/owner/courts/{court_id}/slots/generate",
    response_model=List[SlotRead],
    status_code=status.HTTP_201_CREATED,
)
async def generate_slots(
    payload: SlotGenerate,
    court_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> list[SlotRead]:
    slot_repo = SqlAlchemySlotRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    try:
        async with session.begin():
            slots = await slot_usecase.generate_slots(
                slot_repo,
                venue_repo,
                owner_id=principal.user_id,
                court_id=court_id,
                day=payload.day,
                duration_minutes=payload.duration_minutes,
                price=payload.price,
            )
    except DomainError as exc:
        raise http_error(exc) from exc
    return [SlotRead.from_db(slot=slot) for slot in slots]


@router.post("/owner/slots/block", response_model=List[SlotRead])
async def block_slots(
    payload: SlotBlock,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> list[SlotRead]:
    slot_repo = SqlAlchemySlotRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    try:
        async with session.begin():
            slots = await slot_usecase.block(
                slot_repo,
                venue_repo,
                owner_id=principal.user_id,
                slot_ids=payload.slot_ids,
                reason=payload.reason or "",
            )
    except DomainError as exc:
        raise http_error(exc) from exc
    return [SlotRead.from_db(slot=slot) for slot in slots]


@router.post("/owner/slots/unblock", response_model=List[SlotRead])
async def unblock_slots(
    payload: SlotBlock,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> list[SlotRead]:
    slot_repo = SqlAlchemySlotRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    try:
        async with session.begin():
            slots = await slot_usecase.unblock(
                slot_repo,
                venue_repo,
                owner_id=principal.user_id,
                slot_ids=payload.slot_ids,
            )
    except DomainError as exc:
        raise http_error(exc) from exc
    return [SlotRead.from_db(slot=slot) for slot in slots]
