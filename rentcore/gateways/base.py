"""Payment capture adapter interface.

Every payment method (card, cash voucher) is reached through the same
adapter contract. Adapters only manage their payment vehicle; booking and
escrow transitions live in the services.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from rentcore.models.booking import Booking
    from rentcore.models.user import User


class PaymentMethod(str, Enum):
    """Supported payment methods."""

    CARD = "card"
    CASH_VOUCHER = "cash_voucher"


@dataclass(frozen=True)
class CardHandle:
    """Card payment intent awaiting client-side confirmation."""

    booking_id: uuid.UUID
    intent_id: str
    client_secret: str | None
    amount: int
    currency: str
    expires_at: datetime
    status: str = "requires_payment"
    method: PaymentMethod = field(default=PaymentMethod.CARD, init=False)


@dataclass(frozen=True)
class VoucherHandle:
    """Cash voucher to be paid at an agency."""

    booking_id: uuid.UUID
    voucher_id: uuid.UUID
    voucher_number: str
    amount: int
    currency: str
    expires_at: datetime
    instructions: dict | None = None
    status: str = "pending"
    method: PaymentMethod = field(default=PaymentMethod.CASH_VOUCHER, init=False)


PaymentHandle = Union[CardHandle, VoucherHandle]


@dataclass(frozen=True)
class CaptureEvent:
    """External signal that a payment was made.

    For cards this is the processor webhook; for vouchers it is the admin
    validation carrying the agency receipt.
    """

    event_id: str
    booking_ref: str
    occurred_at: datetime
    agency_code: str | None = None
    transaction_id: str | None = None
    actor_id: uuid.UUID | None = None
    notes: str | None = None


@dataclass
class CaptureResult:
    """Outcome of a payment confirmation."""

    success: bool
    booking_id: uuid.UUID | None = None
    booking_status: str | None = None
    duplicate: bool = False
    message: str | None = None


@dataclass
class GatewayResult:
    """Result of a call to an external processor."""

    success: bool
    transaction_id: str | None = None
    error_message: str | None = None
    raw_response: dict | None = None


class PaymentCaptureAdapter(ABC):
    """Abstract base class for payment capture adapters."""

    @property
    @abstractmethod
    def method(self) -> PaymentMethod:
        """Return the payment method served by this adapter."""

    @property
    @abstractmethod
    def validity(self) -> timedelta:
        """How long a new handle stays payable."""

    @abstractmethod
    async def initiate(
        self,
        db: AsyncSession,
        booking: Booking,
        guest: User,
        contact: dict | None = None,
    ) -> PaymentHandle:
        """Create the payment vehicle for a freshly created booking.

        Raises:
            PaymentError / VoucherIssuanceError: if the vehicle cannot be
                created; the caller removes the booking.
        """

    @abstractmethod
    async def confirm(
        self,
        db: AsyncSession,
        handle: PaymentHandle,
        event: CaptureEvent,
    ) -> bool:
        """Mark the payment vehicle as captured.

        Returns:
            True if this call moved the vehicle to its captured state,
            False if it was not in a capturable state.
        """

    @abstractmethod
    def is_expired(self, handle: PaymentHandle, now: datetime) -> bool:
        """Whether the handle's validity window has passed."""

    @abstractmethod
    async def get_handle(self, db: AsyncSession, booking_id: uuid.UUID) -> PaymentHandle | None:
        """Load the current handle for a booking."""

    @abstractmethod
    async def expire(self, db: AsyncSession, booking_id: uuid.UUID) -> bool:
        """Expire a pending payment vehicle. Returns True if it changed."""

    @abstractmethod
    async def cancel(self, db: AsyncSession, booking_id: uuid.UUID) -> bool:
        """Cancel a pending payment vehicle. Returns True if it changed."""


class CardProcessor(ABC):
    """External card network processor (payment intents, refunds, webhooks)."""

    @abstractmethod
    async def create_payment(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        metadata: dict | None = None,
        idempotency_key: str | None = None,
    ) -> GatewayResult:
        """Create a payment intent.

        Args:
            amount: Amount in smallest currency unit
            currency: Currency code
            reference_id: Internal reference (booking number)
            description: Payment description
            metadata: Additional metadata
            idempotency_key: Key that makes retried creates return the same intent

        Returns:
            GatewayResult; ``raw_response["client_secret"]`` holds the client secret
        """

    @abstractmethod
    async def cancel_payment(self, transaction_id: str) -> GatewayResult:
        """Cancel an uncaptured payment intent."""

    @abstractmethod
    async def process_refund(self, transaction_id: str, amount: int, reason: str) -> GatewayResult:
        """Refund part or all of a captured payment."""

    @abstractmethod
    def verify_webhook(self, payload: bytes, signature: str) -> dict | None:
        """Verify webhook signature and parse payload.

        Returns:
            Parsed event dict if valid, None if invalid
        """
