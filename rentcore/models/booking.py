"""Booking model.

The pricing columns are a snapshot taken at creation time and are never
recomputed; ``rentcore.core.immutability`` rejects any ORM update to them.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rentcore.database import Base, UTCDateTime, utcnow

PRICING_SNAPSHOT_FIELDS = (
    "base_price",
    "nights",
    "subtotal",
    "cleaning_fee",
    "guest_service_fee",
    "host_commission",
    "service_fee",
    "total_amount",
    "host_payout",
    "platform_revenue",
    "currency",
    "security_deposit",
    "guest_fee_rate",
    "host_commission_rate",
    "commission_category",
    "commission_rate_version",
)


class Booking(Base):
    """Reservation of a listing by a guest."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )  # BK-XXXXXX
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id"), nullable=False, index=True
    )
    guest_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    # Stay
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    check_in_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    check_out_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    adults: Mapped[int] = mapped_column(Integer, default=1)
    children: Mapped[int] = mapped_column(Integer, default=0)
    infants: Mapped[int] = mapped_column(Integer, default=0)

    # Pricing snapshot (smallest currency unit)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    nights: Mapped[int] = mapped_column(Integer, nullable=False)
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    cleaning_fee: Mapped[int] = mapped_column(Integer, default=0)
    guest_service_fee: Mapped[int] = mapped_column(Integer, nullable=False)
    host_commission: Mapped[int] = mapped_column(Integer, nullable=False)
    service_fee: Mapped[int] = mapped_column(Integer, nullable=False)  # legacy alias of guest_service_fee
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    host_payout: Mapped[int] = mapped_column(Integer, nullable=False)
    platform_revenue: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    security_deposit: Mapped[int] = mapped_column(Integer, default=0)
    guest_fee_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    host_commission_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    commission_category: Mapped[str] = mapped_column(String(20), nullable=False)
    commission_rate_version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Payment
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)  # card, cash_voucher
    payment_status: Mapped[str] = mapped_column(
        String(20), default="pending"
    )  # pending, succeeded, failed, canceled, refunded, partially_refunded
    payment_expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(String(30), default="pending_payment", index=True)
    status_before_dispute: Mapped[str | None] = mapped_column(String(30))

    # Cancellation
    cancelled_by_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    refund_amount: Mapped[int] = mapped_column(Integer, default=0)

    # Timestamps
    paid_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    confirmed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    activated_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    auto_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    expired_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)

    @property
    def total_guests(self) -> int:
        return self.adults + self.children
