import logging
from typing import List

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_session, require_admin
from ..domain.errors import DomainError
from ..infrastructure.repositories import SqlAlchemyBookingRepository, SqlAlchemySubscriptionRepository
from ..models import BookingStatus
from ..schemas import BookingRead, SubscriptionRead
from ..usecases import approvals as approval_usecase
from ..usecases import quota as quota_usecase
from ..utils.auth import Principal
from .audit import audit_booking
from .errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/subscriptions/{subscription_id}/activate", response_model=SubscriptionRead)
async def activate_subscription(
    subscription_id: int = Path(..., ge=1),
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_admin),
) -> SubscriptionRead:
    sub_repo = SqlAlchemySubscriptionRepository(session)
    try:
        async with session.begin():
            subscription = await quota_usecase.activate_subscription(sub_repo, subscription_id=subscription_id)
    except DomainError as exc:
        raise http_error(exc) from exc
    logger.info("subscription %s activated by admin %s", subscription.id, principal.user_id)
    return SubscriptionRead.from_db(subscription=subscription)


@router.post("/bookings/complete-due", response_model=List[BookingRead])
async def complete_due_bookings(
    session: AsyncSession = Depends(get_session),
    principal: Principal = Depends(require_admin),
) -> list[BookingRead]:
    booking_repo = SqlAlchemyBookingRepository(session)
    async with session.begin():
        completed = await approval_usecase.complete_due_bookings(booking_repo)
    for booking in completed:
        audit_booking(
            action="booking.completed",
            initiator="system",
            booking=booking,
            status_from=BookingStatus.CONFIRMED,
        )
    return [BookingRead.from_db(booking=booking) for booking in completed]
