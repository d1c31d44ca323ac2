"""Escrow ledger models."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rentcore.database import Base, UTCDateTime, utcnow


class Escrow(Base):
    """Funds held on behalf of a booking until release or split.

    Status: held → released | frozen; frozen → split | held
    """

    __tablename__ = "escrows"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id"), nullable=False, unique=True
    )
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    held_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="held", index=True)
    held_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    release_eligible_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    # Release
    release_reference: Mapped[str | None] = mapped_column(String(30), unique=True)
    release_type: Mapped[str | None] = mapped_column(String(20))  # automatic, manual
    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    released_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))

    # Freeze
    freeze_reason: Mapped[str | None] = mapped_column(String(50))
    frozen_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    # Split
    host_share: Mapped[int | None] = mapped_column(Integer)
    guest_share: Mapped[int | None] = mapped_column(Integer)
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime)

    payout_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("host_payouts.id"))

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, onupdate=utcnow)


class EscrowEvent(Base):
    """Append-only history of escrow movements."""

    __tablename__ = "escrow_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    escrow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("escrows.id"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(30), nullable=False)  # captured, released, frozen, unfrozen, split
    from_status: Mapped[str | None] = mapped_column(String(20))
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    reason: Mapped[str | None] = mapped_column(Text)
    details: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
