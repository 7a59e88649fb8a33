from __future__ import annotations

from datetime import datetime, time
from decimal import Decimal
from enum import StrEnum
from typing import Optional

from sqlalchemy import JSON, CheckConstraint, Enum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.sqltypes import BigInteger, Boolean, DateTime, Integer, Numeric, String, Text, Time

# SQLite only autoincrements INTEGER primary keys.
IdType = BigInteger().with_variant(Integer, "sqlite")
Money = Numeric(10, 2)

AUTO_APPROVAL_FEATURE = "Auto Approval System"


class Base(DeclarativeBase):
    pass


def _str_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        values_callable=lambda cls: [e.value for e in cls],
        native_enum=False,
    )


class UserRole(StrEnum):
    USER = "user"
    OWNER = "owner"
    ADMIN = "admin"


class SlotStatus(StrEnum):
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"


class BookingStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class CancelledBy(StrEnum):
    USER = "user"
    OWNER = "owner"


class SubscriptionStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    PENDING_PAYMENT = "pending_payment"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[UserRole] = mapped_column(_str_enum(UserRole), nullable=False, default=UserRole.USER)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)


class Sport(Base):
    __tablename__ = "sports"
    __table_args__ = (UniqueConstraint("name", name="uq_sports_name"),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)


class Venue(Base):
    __tablename__ = "venues"
    __table_args__ = (Index("idx_venues_owner", "owner_id"),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    opens_at: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    closes_at: Mapped[Optional[time]] = mapped_column(Time, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    courts: Mapped[list["Court"]] = relationship(back_populates="venue")


class Court(Base):
    __tablename__ = "courts"
    __table_args__ = (
        CheckConstraint("capacity >= 1", name="chk_courts_capacity"),
        CheckConstraint("hourly_price >= 0", name="chk_courts_price"),
        Index("idx_courts_venue", "venue_id"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    venue_id: Mapped[int] = mapped_column(ForeignKey("venues.id"), nullable=False)
    sport_id: Mapped[int] = mapped_column(ForeignKey("sports.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hourly_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    venue: Mapped["Venue"] = relationship(back_populates="courts")
    slots: Mapped[list["Slot"]] = relationship(back_populates="court")


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        CheckConstraint("starts_at < ends_at", name="chk_slots_time"),
        CheckConstraint("price >= 0", name="chk_slots_price"),
        UniqueConstraint("court_id", "starts_at", name="uq_slots_court_start"),
        Index("idx_slots_court_time", "court_id", "starts_at"),
        Index("idx_slots_status", "status"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    court_id: Mapped[int] = mapped_column(ForeignKey("courts.id"), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[SlotStatus] = mapped_column(
        _str_enum(SlotStatus),
        nullable=False,
        default=SlotStatus.AVAILABLE,
    )
    block_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    court: Mapped["Court"] = relationship(back_populates="slots")


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("code", name="uq_bookings_code"),
        CheckConstraint("amount >= 0", name="chk_bookings_amount"),
        Index("idx_bookings_user", "user_id", "created_at"),
        Index("idx_bookings_venue_status", "venue_id", "status"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    venue_id: Mapped[int] = mapped_column(ForeignKey("venues.id"), nullable=False)
    court_id: Mapped[int] = mapped_column(ForeignKey("courts.id"), nullable=False)
    sport_id: Mapped[int] = mapped_column(ForeignKey("sports.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        _str_enum(BookingStatus),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    payment_proof_ref: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    utr: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[Optional[CancelledBy]] = mapped_column(_str_enum(CancelledBy), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)

    booking_slots: Mapped[list["BookingSlot"]] = relationship(
        back_populates="booking",
        order_by="BookingSlot.position",
        lazy="selectin",
    )

    @property
    def slot_ids(self) -> list[int]:
        return [link.slot_id for link in self.booking_slots]


class BookingSlot(Base):
    __tablename__ = "booking_slots"
    __table_args__ = (Index("idx_booking_slots_slot", "slot_id"),)

    booking_id: Mapped[int] = mapped_column(ForeignKey("bookings.id"), primary_key=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("slots.id"), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    booking: Mapped["Booking"] = relationship(back_populates="booking_slots")


class Plan(Base):
    __tablename__ = "plans"
    __table_args__ = (
        UniqueConstraint("name", name="uq_plans_name"),
        CheckConstraint("max_venues >= 1", name="chk_plans_venues"),
        CheckConstraint("max_courts >= 1", name="chk_plans_courts"),
        CheckConstraint("max_bookings >= 0", name="chk_plans_bookings"),
        CheckConstraint("max_messages >= 0", name="chk_plans_messages"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    duration_days: Mapped[int] = mapped_column(Integer, nullable=False)
    max_venues: Mapped[int] = mapped_column(Integer, nullable=False)
    max_courts: Mapped[int] = mapped_column(Integer, nullable=False)
    max_bookings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_unlimited_bookings: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    max_messages: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_unlimited_messages: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    features: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def has_feature(self, name: str) -> bool:
        return name in (self.features or [])


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("bookings_count >= 0", name="chk_subs_bookings"),
        CheckConstraint("messages_count >= 0", name="chk_subs_messages"),
        Index("idx_subs_owner_status", "owner_id", "status"),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), nullable=False)
    starts_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    ends_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    status: Mapped[SubscriptionStatus] = mapped_column(
        _str_enum(SubscriptionStatus),
        nullable=False,
        default=SubscriptionStatus.PENDING_PAYMENT,
    )
    bookings_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    messages_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cycle_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False), nullable=True)
    payment_proof_ref: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    utr: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    plan: Mapped["Plan"] = relationship(lazy="joined", innerjoin=True)


class AutoApprovalSetting(Base):
    __tablename__ = "auto_approval_settings"

    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    require_payment_proof: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
