"""Listing and calendar models read by the booking core."""

from __future__ import annotations

import uuid
from datetime import date, datetime

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rentcore.database import Base, UTCDateTime, utcnow


class Listing(Base):
    """Rentable listing (a stay or a vehicle)."""

    __tablename__ = "listings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(20), default="stay")  # stay, vehicle
    status: Mapped[str] = mapped_column(
        String(20), default="active", index=True
    )  # draft, pending_review, active, inactive, suspended

    # Pricing (smallest currency unit)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    cleaning_fee: Mapped[int] = mapped_column(Integer, default=0)
    security_deposit: Mapped[int] = mapped_column(Integer, default=0)
    currency: Mapped[str] = mapped_column(String(3), default="DZD")

    # Rules
    min_stay: Mapped[int] = mapped_column(Integer, default=1)
    max_stay: Mapped[int] = mapped_column(Integer, default=365)
    max_guests: Mapped[int] = mapped_column(Integer, default=4)
    instant_book: Mapped[bool] = mapped_column(Boolean, default=False)
    cancellation_policy: Mapped[str] = mapped_column(
        String(20), default="moderate"
    )  # flexible, moderate, strict
    check_in_hour: Mapped[int | None] = mapped_column(Integer)
    check_out_hour: Mapped[int | None] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class CalendarBlock(Base):
    """Host-managed unavailable date ranges."""

    __tablename__ = "calendar_blocks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
