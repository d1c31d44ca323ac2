"""Card payment capture adapter."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.config import settings
from rentcore.core.exceptions import PaymentError
from rentcore.core.idempotency import generate_idempotency_key
from rentcore.core.transitions import compare_and_set
from rentcore.domain.payment_state import card_sources
from rentcore.gateways.base import (
    CaptureEvent,
    CardHandle,
    CardProcessor,
    PaymentCaptureAdapter,
    PaymentMethod,
)
from rentcore.models.booking import Booking
from rentcore.models.payment import CardPayment
from rentcore.models.user import User

logger = logging.getLogger(__name__)

# Card payments that can still be captured
CAPTURABLE = card_sources("succeeded")


def _to_handle(payment: CardPayment) -> CardHandle:
    return CardHandle(
        booking_id=payment.booking_id,
        intent_id=payment.intent_id,
        client_secret=payment.client_secret,
        amount=payment.amount,
        currency=payment.currency,
        expires_at=payment.expires_at,
        status=payment.status,
    )


class CardPaymentAdapter(PaymentCaptureAdapter):
    """Card path: payment intent up front, capture confirmed by webhook."""

    def __init__(self, processor: CardProcessor | None = None):
        if processor is None:
            from rentcore.gateways.stripe_gateway import StripeGateway

            processor = StripeGateway()
        self.processor = processor

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.CARD

    @property
    def validity(self) -> timedelta:
        return timedelta(minutes=settings.card_payment_timeout_minutes)

    async def initiate(
        self,
        db: AsyncSession,
        booking: Booking,
        guest: User,
        contact: dict | None = None,
    ) -> CardHandle:
        result = await self.processor.create_payment(
            amount=booking.total_amount,
            currency=booking.currency,
            reference_id=booking.booking_number,
            description=f"Booking {booking.booking_number}",
            metadata={"booking_id": str(booking.id), "guest_id": str(guest.id)},
            idempotency_key=generate_idempotency_key("card_intent_create", booking.id),
        )
        if not result.success or not result.transaction_id:
            raise PaymentError(f"Card payment could not be initiated: {result.error_message}")

        payment = CardPayment(
            booking_id=booking.id,
            intent_id=result.transaction_id,
            client_secret=(result.raw_response or {}).get("client_secret"),
            amount=booking.total_amount,
            currency=booking.currency,
            expires_at=booking.payment_expires_at,
        )
        db.add(payment)
        await db.flush()

        logger.info(f"Card intent {payment.intent_id} created for booking {booking.booking_number}")
        return _to_handle(payment)

    async def confirm(self, db: AsyncSession, handle: CardHandle, event: CaptureEvent) -> bool:
        return await compare_and_set(
            db,
            CardPayment,
            CardPayment.booking_id == handle.booking_id,
            CAPTURABLE,
            status="succeeded",
            captured_at=event.occurred_at,
        )

    def is_expired(self, handle: CardHandle, now: datetime) -> bool:
        return handle.status in CAPTURABLE and now > handle.expires_at

    async def get_handle(self, db: AsyncSession, booking_id: uuid.UUID) -> CardHandle | None:
        result = await db.execute(
            select(CardPayment)
            .where(CardPayment.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        return _to_handle(payment) if payment else None

    async def get_by_intent(self, db: AsyncSession, intent_id: str) -> CardPayment | None:
        result = await db.execute(select(CardPayment).where(CardPayment.intent_id == intent_id))
        return result.scalar_one_or_none()

    async def _void(self, db: AsyncSession, booking_id: uuid.UUID) -> bool:
        handle = await self.get_handle(db, booking_id)
        if handle is None:
            return False
        changed = await compare_and_set(
            db,
            CardPayment,
            CardPayment.booking_id == booking_id,
            card_sources("canceled"),
            status="canceled",
        )
        if changed:
            result = await self.processor.cancel_payment(handle.intent_id)
            if not result.success:
                logger.warning(
                    f"Processor did not cancel intent {handle.intent_id}: {result.error_message}"
                )
        return changed

    async def expire(self, db: AsyncSession, booking_id: uuid.UUID) -> bool:
        return await self._void(db, booking_id)

    async def cancel(self, db: AsyncSession, booking_id: uuid.UUID) -> bool:
        return await self._void(db, booking_id)

    async def record_failure(self, db: AsyncSession, booking_id: uuid.UUID, message: str) -> bool:
        """Note a declined attempt; the intent stays payable until it times out."""
        return await compare_and_set(
            db,
            CardPayment,
            CardPayment.booking_id == booking_id,
            card_sources("failed"),
            status="failed",
            failure_message=message[:1000],
        )

    async def flag_late_capture(self, db: AsyncSession, booking_id: uuid.UUID) -> bool:
        """Money arrived for a booking that is no longer payable."""
        changed = await compare_and_set(
            db,
            CardPayment,
            CardPayment.booking_id == booking_id,
            card_sources("refund_required"),
            status="refund_required",
        )
        if changed:
            logger.warning(f"Late card capture for booking {booking_id}, refund required")
        return changed
