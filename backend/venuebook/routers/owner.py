from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import get_settings
from ..deps import get_dispatcher, get_session, require_owner
from ..domain.errors import DomainError
from ..infrastructure.repositories import (
    SqlAlchemyBookingRepository,
    SqlAlchemySlotRepository,
    SqlAlchemySubscriptionRepository,
    SqlAlchemyVenueRepository,
)
from ..models import BookingStatus, CancelledBy
from ..schemas import (
    AutoApprovalRead,
    AutoApprovalUpdate,
    BookingRead,
    BookingReject,
    CourtCreate,
    CourtRead,
    MessageQueued,
    MessageSend,
    SubscriptionCreate,
    SubscriptionRead,
    UsageRead,
    VenueCreate,
    VenueRead,
)
from ..usecases import approvals as approval_usecase
from ..usecases import bookings as booking_usecase
from ..usecases import quota as quota_usecase
from ..usecases import venues as venue_usecase
from ..utils.auth import Principal
from ..utils.notifications import NotificationDispatcher, NotificationOutbox
from .audit import audit_booking
from .errors import http_error

router = APIRouter(prefix="/owner", tags=["owner"])


@router.get("/bookings", response_model=List[BookingRead])
async def list_owner_bookings(
    booking_status: Optional[BookingStatus] = Query(default=None, alias="status"),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> list[BookingRead]:
    booking_repo = SqlAlchemyBookingRepository(session)
    bookings = await booking_usecase.list_owner_bookings(
        booking_repo,
        owner_id=principal.user_id,
        status=booking_status,
    )
    return [BookingRead.from_db(booking=booking) for booking in bookings]


@router.get("/bookings/code/{code}", response_model=BookingRead)
async def find_booking_by_code(
    code: str = Path(..., min_length=1, max_length=32),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    try:
        booking = await booking_usecase.find_owner_booking_by_code(
            booking_repo,
            venue_repo,
            owner_id=principal.user_id,
            code=code,
        )
    except DomainError as exc:
        raise http_error(exc) from exc
    return BookingRead.from_db(booking=booking)


@router.post("/bookings/{booking_id}/approve", response_model=BookingRead)
async def approve_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    sub_repo = SqlAlchemySubscriptionRepository(session)
    outbox = NotificationOutbox()
    try:
        async with session.begin():
            booking, previous = await approval_usecase.approve_booking(
                booking_repo,
                venue_repo,
                sub_repo,
                outbox,
                booking_id=booking_id,
                acting_owner_id=principal.user_id,
            )
    except DomainError as exc:
        raise http_error(exc) from exc

    await outbox.flush(dispatcher)
    audit_booking(action="booking.confirmed", initiator="owner", booking=booking, status_from=previous)
    return BookingRead.from_db(booking=booking)


@router.post("/bookings/{booking_id}/reject", response_model=BookingRead)
async def reject_booking(
    payload: BookingReject,
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    slot_repo = SqlAlchemySlotRepository(session)
    outbox = NotificationOutbox()
    try:
        async with session.begin():
            booking, previous = await approval_usecase.reject_booking(
                booking_repo,
                venue_repo,
                slot_repo,
                outbox,
                booking_id=booking_id,
                acting_owner_id=principal.user_id,
                reason=payload.reason,
            )
    except DomainError as exc:
        raise http_error(exc) from exc

    await outbox.flush(dispatcher)
    audit_booking(
        action="booking.rejected",
        initiator="owner",
        booking=booking,
        status_from=previous,
        message=booking.rejection_reason,
    )
    return BookingRead.from_db(booking=booking)


@router.post("/bookings/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
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
                acting_as=CancelledBy.OWNER,
            )
    except DomainError as exc:
        raise http_error(exc) from exc

    await outbox.flush(dispatcher)
    audit_booking(action="booking.cancelled", initiator="owner", booking=booking, status_from=previous)
    return BookingRead.from_db(booking=booking)


@router.post("/bookings/{booking_id}/complete", response_model=BookingRead)
async def complete_booking(
    booking_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> BookingRead:
    booking_repo = SqlAlchemyBookingRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    slot_repo = SqlAlchemySlotRepository(session)
    try:
        async with session.begin():
            booking, previous = await approval_usecase.complete_booking(
                booking_repo,
                venue_repo,
                slot_repo,
                booking_id=booking_id,
                acting_owner_id=principal.user_id,
            )
    except DomainError as exc:
        raise http_error(exc) from exc

    audit_booking(action="booking.completed", initiator="owner", booking=booking, status_from=previous)
    return BookingRead.from_db(booking=booking)


@router.post("/venues", response_model=VenueRead, status_code=status.HTTP_201_CREATED)
async def create_venue(
    payload: VenueCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> VenueRead:
    venue_repo = SqlAlchemyVenueRepository(session)
    sub_repo = SqlAlchemySubscriptionRepository(session)
    try:
        async with session.begin():
            venue = await venue_usecase.create_venue(
                venue_repo,
                sub_repo,
                owner_id=principal.user_id,
                name=payload.name,
                address=payload.address,
                city=payload.city,
                opens_at=payload.opens_at,
                closes_at=payload.closes_at,
            )
    except DomainError as exc:
        raise http_error(exc) from exc
    return VenueRead.from_db(venue=venue)


@router.post("/venues/{venue_id}/courts", response_model=CourtRead, status_code=status.HTTP_201_CREATED)
async def create_court(
    payload: CourtCreate,
    venue_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> CourtRead:
    venue_repo = SqlAlchemyVenueRepository(session)
    sub_repo = SqlAlchemySubscriptionRepository(session)
    try:
        async with session.begin():
            court = await venue_usecase.create_court(
                venue_repo,
                sub_repo,
                owner_id=principal.user_id,
                venue_id=venue_id,
                sport_id=payload.sport_id,
                name=payload.name,
                hourly_price=payload.hourly_price,
                capacity=payload.capacity,
            )
    except DomainError as exc:
        raise http_error(exc) from exc
    return CourtRead.from_db(court=court)


@router.post("/messages", response_model=MessageQueued, status_code=status.HTTP_202_ACCEPTED)
async def send_message(
    payload: MessageSend,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> MessageQueued:
    sub_repo = SqlAlchemySubscriptionRepository(session)
    outbox = NotificationOutbox()
    try:
        async with session.begin():
            await venue_usecase.send_owner_message(
                sub_repo,
                outbox,
                owner_id=principal.user_id,
                recipient_user_id=payload.recipient_user_id,
                body=payload.body,
            )
    except DomainError as exc:
        raise http_error(exc) from exc

    failed = await outbox.flush(dispatcher)
    return MessageQueued(recipient_user_id=payload.recipient_user_id, queued=not failed)


@router.get("/subscription/usage", response_model=UsageRead)
async def get_usage(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> UsageRead:
    sub_repo = SqlAlchemySubscriptionRepository(session)
    venue_repo = SqlAlchemyVenueRepository(session)
    try:
        usage = await quota_usecase.usage(sub_repo, venue_repo, owner_id=principal.user_id)
    except DomainError as exc:
        raise http_error(exc) from exc
    return UsageRead.from_usage(usage)


@router.post("/subscriptions", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
async def subscribe(
    payload: SubscriptionCreate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> SubscriptionRead:
    sub_repo = SqlAlchemySubscriptionRepository(session)
    try:
        async with session.begin():
            subscription = await quota_usecase.subscribe(
                sub_repo,
                owner_id=principal.user_id,
                plan_id=payload.plan_id,
                payment_proof_ref=payload.payment_proof_ref,
                utr=payload.utr,
                auto_activate=get_settings().auto_activate_subscriptions,
            )
    except DomainError as exc:
        raise http_error(exc) from exc
    return SubscriptionRead.from_db(subscription=subscription)


@router.put("/auto-approval", response_model=AutoApprovalRead)
async def update_auto_approval(
    payload: AutoApprovalUpdate,
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_owner),
) -> AutoApprovalRead:
    sub_repo = SqlAlchemySubscriptionRepository(session)
    try:
        async with session.begin():
            setting = await venue_usecase.update_auto_approval(
                sub_repo,
                owner_id=principal.user_id,
                enabled=payload.enabled,
                require_payment_proof=payload.require_payment_proof,
                max_amount=payload.max_amount,
            )
    except DomainError as exc:
        raise http_error(exc) from exc
    return AutoApprovalRead.from_db(setting=setting)
