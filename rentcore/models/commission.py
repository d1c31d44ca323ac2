"""Commission settings models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rentcore.database import Base, UTCDateTime, utcnow


class CommissionRate(Base):
    """Current host commission rate for one category.

    The ``guest_fee`` row carries the guest service fee rate.
    """

    __tablename__ = "commission_rates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    min_value: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    max_value: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("users.id"))
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)


class CommissionRateHistory(Base):
    """Append-only record of commission rate changes."""

    __tablename__ = "commission_rate_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    previous_value: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    new_value: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    changed_by: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text)
    changed_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, index=True)
