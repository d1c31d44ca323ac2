"""Payment vehicle models: card payments, cash vouchers, processed events, payouts."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rentcore.database import Base, UTCDateTime, utcnow


class CardPayment(Base):
    """Card-network payment intent for a booking."""

    __tablename__ = "card_payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    provider: Mapped[str] = mapped_column(String(30), default="stripe")
    intent_id: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    client_secret: Mapped[str | None] = mapped_column(String(255))
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default="requires_payment"
    )  # requires_payment, succeeded, failed, canceled, refund_required
    failure_message: Mapped[str | None] = mapped_column(Text)

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    captured_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class CashVoucher(Base):
    """Cash voucher paid in person at an agency and validated by an admin."""

    __tablename__ = "cash_vouchers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    voucher_number: Mapped[str] = mapped_column(
        String(30), unique=True, nullable=False, index=True
    )  # NE-2026-XXXXXXXX
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="DZD")

    # Guest contact shown to the agency
    guest_full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    guest_phone: Mapped[str] = mapped_column(String(20), nullable=False)
    guest_email: Mapped[str | None] = mapped_column(String(255))
    instructions: Mapped[dict | None] = mapped_column(JSON)  # per language: en, fr, ar

    status: Mapped[str] = mapped_column(
        String(20), default="pending", index=True
    )  # pending, validated, expired, cancelled
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    # Agency validation
    agency_code: Mapped[str | None] = mapped_column(String(50))
    agency_transaction_id: Mapped[str | None] = mapped_column(String(100))
    validated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    validated_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    validation_notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class ProcessedPaymentEvent(Base):
    """External payment event ids that have already been applied."""

    __tablename__ = "processed_payment_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False)  # card_webhook, voucher_admin
    booking_ref: Mapped[str | None] = mapped_column(String(100))
    processed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class HostPayout(Base):
    """Batch of released escrow funds owed to one host."""

    __tablename__ = "host_payouts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reference: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    host_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    bank_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bank_accounts.id"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending, sent, failed
    booking_ids: Mapped[list[str]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)
