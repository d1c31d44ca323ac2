"""Payment confirmation for both capture paths.

``confirm_payment`` is the command behind the card webhook and is safe to
replay: each external event id is claimed once, and the booking only
leaves ``pending_payment`` through a compare-and-set. Voucher validation
goes through the same capture step so the escrow hold happens exactly once
whichever path paid.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.core.exceptions import InvalidTransition, NotFoundError, ValidationError
from rentcore.core.idempotency import claim_event
from rentcore.gateways.base import CaptureEvent, CaptureResult, PaymentCaptureAdapter, PaymentMethod
from rentcore.models.booking import Booking
from rentcore.models.payment import CashVoucher
from rentcore.models.user import User
from rentcore.services.audit_service import audit_service
from rentcore.services.booking_service import booking_service
from rentcore.services.escrow_service import escrow_service
from rentcore.services.gateway_service import gateway_service
from rentcore.services.notification_service import notification_service

logger = logging.getLogger(__name__)


@dataclass
class VoucherValidation:
    """Outcome of an admin voucher validation."""

    voucher: CashVoucher
    booking: Booking
    captured: bool
    expired: bool = False
    already_validated: bool = False


class PaymentService:
    """Service for turning captured payments into confirmed bookings."""

    async def resolve_booking(self, db: AsyncSession, booking_ref: str) -> Booking | None:
        """Find a booking by card intent id, booking number or booking id."""
        payment = await gateway_service.card.get_by_intent(db, booking_ref)
        if payment is not None:
            return await booking_service.get(db, payment.booking_id)
        return await booking_service.find_by_ref(db, booking_ref)

    async def confirm_payment(
        self,
        db: AsyncSession,
        event_id: str,
        booking_ref: str,
        now: datetime,
    ) -> CaptureResult:
        """Apply a card capture event.

        Replays, unknown bookings and already-confirmed bookings are no-op
        successes. A capture for a booking that can no longer be paid is
        flagged for refund and reported as unsuccessful.
        """
        if not await claim_event(db, event_id, "card_webhook", booking_ref):
            return CaptureResult(success=True, duplicate=True, message="Event already processed")

        booking = await self.resolve_booking(db, booking_ref)
        if booking is None:
            logger.warning(f"Card capture {event_id} references unknown booking {booking_ref}")
            return CaptureResult(success=True, message="Unknown booking")

        if booking.payment_method != PaymentMethod.CARD.value:
            logger.warning(f"Card capture {event_id} for non-card booking {booking.booking_number}")
            return CaptureResult(
                success=False,
                booking_id=booking.id,
                booking_status=booking.status,
                message="Booking is not paid by card",
            )

        event = CaptureEvent(event_id=event_id, booking_ref=booking_ref, occurred_at=now)
        return await self._capture(db, booking, gateway_service.card, event)

    async def record_card_failure(
        self,
        db: AsyncSession,
        event_id: str,
        booking_ref: str,
        message: str,
    ) -> bool:
        """Note a declined card attempt. The booking stays payable until it expires."""
        if not await claim_event(db, event_id, "card_webhook", booking_ref):
            return False
        booking = await self.resolve_booking(db, booking_ref)
        if booking is None:
            return False
        return await gateway_service.card.record_failure(db, booking.id, message)

    async def _capture(
        self,
        db: AsyncSession,
        booking: Booking,
        adapter: PaymentCaptureAdapter,
        event: CaptureEvent,
    ) -> CaptureResult:
        now = event.occurred_at

        if booking.payment_status == "succeeded" and booking.status != "pending_payment":
            return CaptureResult(
                success=True,
                booking_id=booking.id,
                booking_status=booking.status,
                duplicate=True,
                message="Booking already paid",
            )

        if booking.status != "pending_payment":
            if adapter.method == PaymentMethod.CARD:
                await gateway_service.card.flag_late_capture(db, booking.id)
            return CaptureResult(
                success=False,
                booking_id=booking.id,
                booking_status=booking.status,
                message=f"Booking is {booking.status}; payment requires a refund",
            )

        handle = await adapter.get_handle(db, booking.id)
        if handle is None:
            return CaptureResult(
                success=False,
                booking_id=booking.id,
                booking_status=booking.status,
                message="No payment vehicle for booking",
            )

        if not await adapter.confirm(db, handle, event):
            booking = await booking_service.get(db, booking.id)
            if booking.payment_status == "succeeded":
                return CaptureResult(
                    success=True,
                    booking_id=booking.id,
                    booking_status=booking.status,
                    duplicate=True,
                    message="Booking already paid",
                )
            return CaptureResult(
                success=False,
                booking_id=booking.id,
                booking_status=booking.status,
                message="Payment vehicle is not capturable",
            )

        listing = await booking_service.get_listing(db, booking.listing_id)
        target = "confirmed" if listing.instant_book else "paid"
        values = {"payment_status": "succeeded", "paid_at": now}
        if target == "confirmed":
            values["confirmed_at"] = now

        if not await booking_service.transition(db, booking, "pending_payment", target, **values):
            # The booking expired or was cancelled between the checks above
            # and the update; undo the vehicle capture with the transaction.
            current = await booking_service.get(db, booking.id)
            raise InvalidTransition("booking", current.status, target)

        await escrow_service.hold(db, booking, now)

        logger.info(
            f"Payment captured for booking {booking.booking_number} via {adapter.method.value}, "
            f"status {booking.status}"
        )
        await notification_service.notify(
            booking.guest_id,
            notification_service.PAYMENT_RECEIVED,
            {"booking_id": str(booking.id), "amount": booking.total_amount, "currency": booking.currency},
        )
        await notification_service.notify(
            booking.host_id,
            notification_service.BOOKING_CONFIRMED if target == "confirmed" else notification_service.BOOKING_PAID,
            {"booking_id": str(booking.id), "booking_number": booking.booking_number},
        )
        return CaptureResult(success=True, booking_id=booking.id, booking_status=booking.status)

    async def get_voucher(
        self,
        db: AsyncSession,
        voucher_id: UUID | None = None,
        booking_id: UUID | None = None,
    ) -> CashVoucher:
        if voucher_id is None and booking_id is None:
            raise ValidationError("Either voucher_id or booking_id is required")
        voucher = await gateway_service.cash_voucher.get_voucher(
            db, booking_id=booking_id, voucher_id=voucher_id
        )
        if voucher is None:
            raise NotFoundError("Voucher", str(voucher_id or booking_id))
        return voucher

    async def check_voucher_expiry(
        self, db: AsyncSession, voucher: CashVoucher, now: datetime
    ) -> bool:
        """Expire a pending voucher past its deadline, with its booking."""
        adapter = gateway_service.cash_voucher
        handle = await adapter.get_handle(db, voucher.booking_id)
        if handle is None or handle.status != "pending" or not adapter.is_expired(handle, now):
            return False
        booking = await booking_service.get(db, voucher.booking_id)
        expired = await booking_service.expire_if_overdue(db, booking, now)
        if not expired:
            # Booking moved on by another path; only the voucher is stale
            await gateway_service.cash_voucher.expire(db, voucher.booking_id)
        await db.refresh(voucher)
        return True

    async def validate_voucher(
        self,
        db: AsyncSession,
        admin: User,
        now: datetime,
        agency_code: str,
        transaction_id: str,
        voucher_id: UUID | None = None,
        booking_id: UUID | None = None,
        notes: str | None = None,
    ) -> VoucherValidation:
        """Record an agency cash receipt and capture the booking.

        Validating an already-validated voucher returns its state unchanged.
        An expired voucher is marked expired (with its booking) instead.
        """
        if not agency_code or not transaction_id:
            raise ValidationError("Agency code and transaction id are required")

        voucher = await self.get_voucher(db, voucher_id, booking_id)
        booking = await booking_service.get(db, voucher.booking_id)

        if voucher.status == "validated":
            return VoucherValidation(voucher, booking, captured=False, already_validated=True)

        if await self.check_voucher_expiry(db, voucher, now):
            booking = await booking_service.get(db, voucher.booking_id)
            return VoucherValidation(voucher, booking, captured=False, expired=True)

        if voucher.status != "pending":
            raise InvalidTransition("voucher", voucher.status, "validated")

        event = CaptureEvent(
            event_id=f"voucher:{voucher.id}",
            booking_ref=str(booking.id),
            occurred_at=now,
            agency_code=agency_code,
            transaction_id=transaction_id,
            actor_id=admin.id,
            notes=notes,
        )
        result = await self._capture(db, booking, gateway_service.cash_voucher, event)
        if not result.success:
            raise InvalidTransition("voucher", voucher.status, "validated")

        await db.refresh(voucher)
        booking = await booking_service.get(db, booking.id)
        await audit_service.log_status_change(
            db,
            admin.id,
            "voucher_validate",
            "cash_voucher",
            voucher.id,
            "pending",
            voucher.status,
            agency_code=agency_code,
            transaction_id=transaction_id,
            amount=voucher.amount,
        )
        return VoucherValidation(voucher, booking, captured=not result.duplicate)


payment_service = PaymentService()
