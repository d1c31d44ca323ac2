"""Cash voucher capture adapter and agency client."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.config import settings
from rentcore.core.exceptions import ValidationError, VoucherIssuanceError
from rentcore.core.transitions import compare_and_set
from rentcore.domain.payment_state import voucher_sources
from rentcore.domain.pricing import to_major_units
from rentcore.gateways.base import (
    CaptureEvent,
    PaymentCaptureAdapter,
    PaymentMethod,
    VoucherHandle,
)
from rentcore.models.booking import Booking
from rentcore.models.payment import CashVoucher
from rentcore.models.user import User
from rentcore.utils.reference_numbers import generate_voucher_number

logger = logging.getLogger(__name__)


class VoucherIssuer:
    """Client for the cash collection agency.

    Without an API URL the agency runs in manual mode: vouchers are only
    recorded locally and admins validate receipts by hand.
    """

    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        agency_name: str | None = None,
    ) -> None:
        self.api_url = api_url if api_url is not None else settings.voucher_agency_api_url
        self.api_key = api_key if api_key is not None else settings.voucher_agency_api_key
        self.agency_name = agency_name or settings.voucher_agency_name

    def build_instructions(
        self, voucher_number: str, amount: int, currency: str, expires_at: datetime
    ) -> dict[str, str]:
        formatted_amount = f"{to_major_units(amount, currency):,.2f} {currency}"
        formatted_date = expires_at.strftime("%Y-%m-%d %H:%M UTC")
        return {
            "en": (
                "Payment instructions:\n"
                f"1. Go to a {self.agency_name} agency\n"
                f"2. Present this voucher with number: {voucher_number}\n"
                f"3. Pay the amount of {formatted_amount}\n"
                "4. Keep your receipt\n"
                "5. Your booking will be confirmed once the payment is validated\n\n"
                f"IMPORTANT: This voucher expires on {formatted_date}"
            ),
            "fr": (
                "Instructions de paiement:\n"
                f"1. Rendez-vous dans une agence {self.agency_name}\n"
                f"2. Présentez ce bon avec le numéro: {voucher_number}\n"
                f"3. Payez le montant de {formatted_amount}\n"
                "4. Conservez votre reçu\n"
                "5. Votre réservation sera confirmée après validation du paiement\n\n"
                f"IMPORTANT: Ce bon expire le {formatted_date}"
            ),
            "ar": (
                "تعليمات الدفع:\n"
                f"1. توجه إلى وكالة {self.agency_name}\n"
                f"2. قدم هذه القسيمة برقم: {voucher_number}\n"
                f"3. ادفع مبلغ {formatted_amount}\n"
                "4. احتفظ بإيصالك\n\n"
                f"هام: تنتهي صلاحية هذه القسيمة في {formatted_date}"
            ),
        }

    async def register(
        self,
        voucher_number: str,
        amount: int,
        currency: str,
        expires_at: datetime,
        guest_full_name: str,
        guest_phone: str,
    ) -> None:
        """Announce a voucher to the agency.

        Raises:
            VoucherIssuanceError: If the agency rejects or cannot be reached
        """
        if not self.api_url:
            logger.info(f"Voucher {voucher_number} recorded in manual mode (no agency API)")
            return

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    f"{self.api_url.rstrip('/')}/vouchers",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={
                        "voucher_number": voucher_number,
                        "amount": amount,
                        "currency": currency,
                        "expires_at": expires_at.isoformat(),
                        "payer": {"full_name": guest_full_name, "phone": guest_phone},
                    },
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Agency rejected voucher {voucher_number}: {e}")
            raise VoucherIssuanceError(str(e)) from e


def _to_handle(voucher: CashVoucher) -> VoucherHandle:
    return VoucherHandle(
        booking_id=voucher.booking_id,
        voucher_id=voucher.id,
        voucher_number=voucher.voucher_number,
        amount=voucher.amount,
        currency=voucher.currency,
        expires_at=voucher.expires_at,
        instructions=voucher.instructions,
        status=voucher.status,
    )


class CashVoucherAdapter(PaymentCaptureAdapter):
    """Cash path: voucher issued with the booking, validated by an admin."""

    def __init__(self, issuer: VoucherIssuer | None = None):
        self.issuer = issuer or VoucherIssuer()

    @property
    def method(self) -> PaymentMethod:
        return PaymentMethod.CASH_VOUCHER

    @property
    def validity(self) -> timedelta:
        return timedelta(hours=settings.voucher_expiry_hours)

    async def initiate(
        self,
        db: AsyncSession,
        booking: Booking,
        guest: User,
        contact: dict | None = None,
    ) -> VoucherHandle:
        contact = contact or {}
        full_name = contact.get("full_name") or guest.full_name
        phone = contact.get("phone") or guest.phone
        if not full_name or not phone:
            raise ValidationError("Full name and phone number are required for cash payment")
        if booking.currency not in settings.voucher_currencies:
            raise ValidationError(f"Cash vouchers are not available in {booking.currency}")

        voucher_number = await generate_voucher_number(db, booking.created_at)
        await self.issuer.register(
            voucher_number=voucher_number,
            amount=booking.total_amount,
            currency=booking.currency,
            expires_at=booking.payment_expires_at,
            guest_full_name=full_name,
            guest_phone=phone,
        )

        voucher = CashVoucher(
            booking_id=booking.id,
            voucher_number=voucher_number,
            amount=booking.total_amount,
            currency=booking.currency,
            guest_full_name=full_name,
            guest_phone=phone,
            guest_email=contact.get("email") or guest.email,
            instructions=self.issuer.build_instructions(
                voucher_number, booking.total_amount, booking.currency, booking.payment_expires_at
            ),
            expires_at=booking.payment_expires_at,
        )
        db.add(voucher)
        await db.flush()

        logger.info(f"Voucher {voucher_number} issued for booking {booking.booking_number}")
        return _to_handle(voucher)

    async def confirm(self, db: AsyncSession, handle: VoucherHandle, event: CaptureEvent) -> bool:
        return await compare_and_set(
            db,
            CashVoucher,
            (CashVoucher.booking_id == handle.booking_id)
            & (CashVoucher.expires_at >= event.occurred_at),
            voucher_sources("validated"),
            status="validated",
            agency_code=event.agency_code,
            agency_transaction_id=event.transaction_id,
            validated_by=event.actor_id,
            validated_at=event.occurred_at,
            validation_notes=event.notes,
        )

    def is_expired(self, handle: VoucherHandle, now: datetime) -> bool:
        return handle.status == "expired" or (handle.status == "pending" and now > handle.expires_at)

    async def get_voucher(
        self,
        db: AsyncSession,
        booking_id: uuid.UUID | None = None,
        voucher_id: uuid.UUID | None = None,
    ) -> CashVoucher | None:
        stmt = select(CashVoucher).execution_options(populate_existing=True)
        if voucher_id is not None:
            stmt = stmt.where(CashVoucher.id == voucher_id)
        else:
            stmt = stmt.where(CashVoucher.booking_id == booking_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_handle(self, db: AsyncSession, booking_id: uuid.UUID) -> VoucherHandle | None:
        voucher = await self.get_voucher(db, booking_id=booking_id)
        return _to_handle(voucher) if voucher else None

    async def expire(self, db: AsyncSession, booking_id: uuid.UUID) -> bool:
        return await compare_and_set(
            db,
            CashVoucher,
            CashVoucher.booking_id == booking_id,
            voucher_sources("expired"),
            status="expired",
        )

    async def cancel(self, db: AsyncSession, booking_id: uuid.UUID) -> bool:
        return await compare_and_set(
            db,
            CashVoucher,
            CashVoucher.booking_id == booking_id,
            voucher_sources("cancelled"),
            status="cancelled",
        )
