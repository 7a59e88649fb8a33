from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from .models import AutoApprovalSetting, Booking, BookingStatus, CancelledBy, Court, Slot, SlotStatus, Subscription, SubscriptionStatus, Venue
from .utils.time import utc_naive_to_local, venue_tz


def _local_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return dt.astimezone(venue_tz()).isoformat()


class SlotRead(BaseModel):
    slot_id: int
    court_id: int
    starts_at: datetime
    ends_at: datetime
    price: Decimal
    status: SlotStatus
    block_reason: Optional[str] = None

    @field_serializer("starts_at", "ends_at")
    def _ser_datetime(self, dt: datetime) -> Optional[str]:
        return _local_iso(dt)

    @classmethod
    def from_db(cls, *, slot: Slot) -> "SlotRead":
        return cls(
            slot_id=slot.id,
            court_id=slot.court_id,
            starts_at=utc_naive_to_local(slot.starts_at),
            ends_at=utc_naive_to_local(slot.ends_at),
            price=slot.price,
            status=slot.status,
            block_reason=slot.block_reason,
        )


class SlotCreate(BaseModel):
    starts_at: datetime
    ends_at: datetime
    price: Optional[Decimal] = Field(default=None, ge=0)


class SlotGenerate(BaseModel):
    day: date
    duration_minutes: int = Field(default=60, ge=15, le=24 * 60)
    price: Optional[Decimal] = Field(default=None, ge=0)


class SlotBlock(BaseModel):
    slot_ids: list[int] = Field(min_length=1)
    reason: Optional[str] = None


class BookingCreate(BaseModel):
    venue_id: int = Field(ge=1)
    court_id: int = Field(ge=1)
    sport_id: int = Field(ge=1)
    slot_id: Optional[int] = Field(default=None, ge=1)
    slot_ids: Optional[list[int]] = None
    payment_proof_ref: Optional[str] = Field(default=None, max_length=500)
    utr: Optional[str] = Field(default=None, max_length=100)

    @model_validator(mode="after")
    def _single_or_multi(self) -> "BookingCreate":
        # Single-slot clients send slot_id; both shapes end up in slot_ids.
        if self.slot_ids is None and self.slot_id is None:
            raise ValueError("slot_id or slot_ids is required")
        if self.slot_ids is not None and self.slot_id is not None:
            raise ValueError("send either slot_id or slot_ids, not both")
        if self.slot_ids is None:
            self.slot_ids = [self.slot_id]  # type: ignore[list-item]
        return self


class BookingReject(BaseModel):
    reason: str = Field(default="", max_length=2000)


class BookingRead(BaseModel):
    booking_id: int
    booking_code: str
    user_id: int
    venue_id: int
    court_id: int
    sport_id: int
    slot_ids: list[int]
    amount: Decimal
    status: BookingStatus
    payment_proof_ref: Optional[str]
    utr: Optional[str]
    rejection_reason: Optional[str]
    cancelled_by: Optional[CancelledBy]
    version: int
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @field_serializer("created_at", "confirmed_at", "closed_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return _local_iso(dt)

    @classmethod
    def from_db(cls, *, booking: Booking) -> "BookingRead":
        return cls(
            booking_id=booking.id,
            booking_code=booking.code,
            user_id=booking.user_id,
            venue_id=booking.venue_id,
            court_id=booking.court_id,
            sport_id=booking.sport_id,
            slot_ids=booking.slot_ids,
            amount=booking.amount,
            status=booking.status,
            payment_proof_ref=booking.payment_proof_ref,
            utr=booking.utr,
            rejection_reason=booking.rejection_reason,
            cancelled_by=booking.cancelled_by,
            version=booking.version,
            created_at=utc_naive_to_local(booking.created_at),
            confirmed_at=utc_naive_to_local(booking.confirmed_at) if booking.confirmed_at else None,
            closed_at=utc_naive_to_local(booking.closed_at) if booking.closed_at else None,
        )


class VenueCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    address: str = Field(min_length=1, max_length=500)
    city: str = Field(min_length=1, max_length=100)
    opens_at: Optional[time] = None
    closes_at: Optional[time] = None


class VenueRead(BaseModel):
    venue_id: int
    owner_id: int
    name: str
    address: str
    city: str
    opens_at: Optional[time]
    closes_at: Optional[time]

    @classmethod
    def from_db(cls, *, venue: Venue) -> "VenueRead":
        return cls(
            venue_id=venue.id,
            owner_id=venue.owner_id,
            name=venue.name,
            address=venue.address,
            city=venue.city,
            opens_at=venue.opens_at,
            closes_at=venue.closes_at,
        )


class CourtCreate(BaseModel):
    sport_id: int = Field(ge=1)
    name: str = Field(min_length=1, max_length=255)
    hourly_price: Decimal = Field(ge=0)
    capacity: int = Field(default=1, ge=1)


class CourtRead(BaseModel):
    court_id: int
    venue_id: int
    sport_id: int
    name: str
    hourly_price: Decimal
    capacity: int

    @classmethod
    def from_db(cls, *, court: Court) -> "CourtRead":
        return cls(
            court_id=court.id,
            venue_id=court.venue_id,
            sport_id=court.sport_id,
            name=court.name,
            hourly_price=court.hourly_price,
            capacity=court.capacity,
        )


class MessageSend(BaseModel):
    recipient_user_id: int = Field(ge=1)
    body: str = Field(min_length=1, max_length=2000)


class MessageQueued(BaseModel):
    recipient_user_id: int
    queued: bool = True


class SubscriptionCreate(BaseModel):
    plan_id: int = Field(ge=1)
    payment_proof_ref: Optional[str] = Field(default=None, max_length=500)
    utr: Optional[str] = Field(default=None, max_length=100)


class SubscriptionRead(BaseModel):
    subscription_id: int
    owner_id: int
    plan_id: int
    plan_name: str
    status: SubscriptionStatus
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    amount: Decimal

    @field_serializer("starts_at", "ends_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return _local_iso(dt)

    @classmethod
    def from_db(cls, *, subscription: Subscription) -> "SubscriptionRead":
        return cls(
            subscription_id=subscription.id,
            owner_id=subscription.owner_id,
            plan_id=subscription.plan_id,
            plan_name=subscription.plan.name,
            status=subscription.status,
            starts_at=utc_naive_to_local(subscription.starts_at) if subscription.starts_at else None,
            ends_at=utc_naive_to_local(subscription.ends_at) if subscription.ends_at else None,
            amount=subscription.amount,
        )


class UsageRead(BaseModel):
    subscription: SubscriptionRead
    limits: dict[str, Optional[int]]
    used: dict[str, int]
    features: list[str]

    @classmethod
    def from_usage(cls, usage: Any) -> "UsageRead":
        return cls(
            subscription=SubscriptionRead.from_db(subscription=usage.subscription),
            # None means unlimited.
            limits={name: limit.ceiling for name, limit in usage.limits.items()},
            used={
                "venues": usage.venues_used,
                "bookings": usage.bookings_used,
                "messages": usage.messages_used,
            },
            features=list(usage.plan.features or []),
        )


class AutoApprovalUpdate(BaseModel):
    enabled: bool
    require_payment_proof: bool = True
    max_amount: Optional[Decimal] = Field(default=None, ge=0)


class AutoApprovalRead(BaseModel):
    owner_id: int
    enabled: bool
    require_payment_proof: bool
    max_amount: Optional[Decimal]

    @classmethod
    def from_db(cls, *, setting: AutoApprovalSetting) -> "AutoApprovalRead":
        return cls(
            owner_id=setting.owner_id,
            enabled=setting.enabled,
            require_payment_proof=setting.require_payment_proof,
            max_amount=setting.max_amount,
        )
