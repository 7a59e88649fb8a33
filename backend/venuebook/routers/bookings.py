from typing import List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_current_principal, get_dispatcher, get_session
from ..domain.errors import DomainError
from ..infrastructure.repositories import (
    SqlAlchemyBookingRepository,
    SqlAlchemySlotRepository,
    SqlAlchemySubscriptionRepository,
    SqlAlchemyVenueRepository,
)
from ..models import BookingStatus, CancelledBy
from ..schemas import BookingCreate, BookingRead
from ..usecases import approvals as approval_usecase
from ..usecases import bookings as booking_usecase
from ..utils.auth import Principal
from ..utils.notifications import NotificationDispatcher, NotificationOutbox
from .audit import audit_booking
from .errors import http_error

router = APIRouter(tags=["bookings"])


@router.post("/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingRead:
    slot_repo = SqlAlchemySlotRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    booking_repo = SqlAlchemyBookingRepository(session)
    sub_repo = SqlAlchemySubscriptionRepository(session)
    outbox = NotificationOutbox()
    try:
        async with session.begin():
            booking = await booking_usecase.create_booking(
                slot_repo,
                venue_repo,
                booking_repo,
                sub_repo,
                outbox,
                user_id=principal.user_id,
                venue_id=payload.venue_id,
                court_id=payload.court_id,
                sport_id=payload.sport_id,
                slot_ids=payload.slot_ids or [],
                payment_proof_ref=payload.payment_proof_ref,
                utr=payload.utr,
            )
    except DomainError as exc:
        raise http_error(exc) from exc

    await outbox.flush(dispatcher)
    audit_booking(action="booking.created", initiator="user", booking=booking, status_from=None)
    if booking.status == BookingStatus.CONFIRMED:
        audit_booking(
            action="booking.auto_approved",
            initiator="system",
            booking=booking,
            status_from=BookingStatus.PENDING,
        )
    return BookingRead.from_db(booking=booking)


@router.get("/me/bookings", response_model=List[BookingRead])
async def list_my_bookings(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> list[BookingRead]:
    booking_repo = SqlAlchemyBookingRepository(session)
    bookings = await booking_usecase.list_user_bookings(booking_repo, user_id=principal.user_id)
    return [BookingRead.from_db(booking=booking) for booking in bookings]


@router.get("/me/bookings/{booking_id}", response_model=BookingRead)
async def get_my_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    try:
        booking = await booking_usecase.get_user_booking(
            booking_repo,
            booking_id=booking_id,
            user_id=principal.user_id,
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return BookingRead.from_db(booking=booking)


@router.post("/me/bookings/{booking_id}/cancel", response_model=BookingRead)
async def cancel_my_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(get_current_principal),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    slot_repo = SqlAlchemySlotRepository(session)
    outbox = NotificationOutbox()
    try:
        async with session.begin():
            booking, previous = await approval_usecase.cancel_booking(
                booking_repo,
                venue_repo,
                slot_repo,
                outbox,
                booking_id=booking_id,
                actor_id=principal.user_id,
                acting_as=CancelledBy.USER,
            )
    except DomainError as exc:
        raise http_error(exc) from exc

    await outbox.flush(dispatcher)
    audit_booking(action="booking.cancelled", initiator="user", booking=booking, status_from=previous)
    return BookingRead.from_db(booking=booking)
