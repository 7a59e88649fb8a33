from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal

from ..domain.errors import AuthorizationError, NotFoundError, ValidationError
from ..domain.repositories import SubscriptionRepository, VenueRepository
from ..domain.services import QuotaAction
from ..models import AutoApprovalSetting, Court, Venue
from ..utils.notifications import NotificationEvent, NotificationOutbox
from ..utils.time import utc_now_naive
from . import quota as quota_usecase

MAX_MESSAGE_LENGTH = 2000


def _required(field: str, value: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(field, f"{field} must not be empty")
    return cleaned


async def create_venue(
    venue_repo: VenueRepository,
    sub_repo: SubscriptionRepository,
    *,
    owner_id: int,
    name: str,
    address: str,
    city: str,
    opens_at: time | None = None,
    closes_at: time | None = None,
    now: datetime | None = None,
) -> Venue:
    name = _required("name", name)
    address = _required("address", address)
    city = _required("city", city)
    if opens_at is not None and closes_at is not None and opens_at >= closes_at:
        raise ValidationError("closes_at", "closing time must be after opening time")

    await quota_usecase.check_and_consume(
        sub_repo,
        venue_repo,
        owner_id=owner_id,
        action=QuotaAction.CREATE_VENUE,
        now=now,
    )
    return await venue_repo.create_venue(
        owner_id=owner_id,
        name=name,
        address=address,
        city=city,
        opens_at=opens_at,
        closes_at=closes_at,
    )


async def create_court(
    venue_repo: VenueRepository,
    sub_repo: SubscriptionRepository,
    *,
    owner_id: int,
    venue_id: int,
    sport_id: int,
    name: str,
    hourly_price: Decimal,
    capacity: int = 1,
    now: datetime | None = None,
) -> Court:
    venue = await venue_repo.get_venue(venue_id)
    if venue is None or not venue.is_active:
        raise NotFoundError(f"venue {venue_id} not found")
    if venue.owner_id != owner_id:
        raise AuthorizationError("you do not own this venue")
    if await venue_repo.get_sport(sport_id) is None:
        raise NotFoundError(f"sport {sport_id} not found")
    name = _required("name", name)
    if hourly_price < 0:
        raise ValidationError("hourly_price", "price must not be negative")
    if capacity < 1:
        raise ValidationError("capacity", "capacity must be at least 1")

    await quota_usecase.check_and_consume(
        sub_repo,
        venue_repo,
        owner_id=owner_id,
        action=QuotaAction.CREATE_COURT,
        now=now,
        venue_id=venue_id,
    )
    return await venue_repo.create_court(
        venue_id=venue_id,
        sport_id=sport_id,
        name=name,
        hourly_price=hourly_price,
        capacity=capacity,
    )


async def send_owner_message(
    sub_repo: SubscriptionRepository,
    outbox: NotificationOutbox,
    *,
    owner_id: int,
    recipient_user_id: int,
    body: str,
    now: datetime | None = None,
) -> NotificationEvent:
    """Queue a message from an owner to a player; each one counts against the plan's message quota."""
    body = _required("body", body)
    if len(body) > MAX_MESSAGE_LENGTH:
        raise ValidationError("body", f"message must be at most {MAX_MESSAGE_LENGTH} characters")

    await quota_usecase.check_and_consume(
        sub_repo,
        None,
        owner_id=owner_id,
        action=QuotaAction.SEND_MESSAGE,
        now=now,
    )
    event = NotificationEvent(
        event="owner_message",
        recipient_user_id=recipient_user_id,
        payload={"owner_id": owner_id, "body": body},
    )
    outbox.add(event)
    return event


async def update_auto_approval(
    sub_repo: SubscriptionRepository,
    *,
    owner_id: int,
    enabled: bool,
    require_payment_proof: bool = True,
    max_amount: Decimal | None = None,
    now: datetime | None = None,
) -> AutoApprovalSetting:
    if max_amount is not None and max_amount < 0:
        raise ValidationError("max_amount", "amount limit must not be negative")
    now = now or utc_now_naive()
    setting = await sub_repo.get_auto_approval(owner_id)
    if setting is None:
        setting = AutoApprovalSetting(owner_id=owner_id)
    setting.enabled = enabled
    setting.require_payment_proof = require_payment_proof
    setting.max_amount = max_amount
    setting.updated_at = now
    return await sub_repo.save_auto_approval(setting)
