"""Booking lifecycle: request, pricing snapshot, cancellation, host actions."""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.config import settings
from rentcore.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DatesNotAvailable,
    EscrowFrozen,
    InvalidDateRange,
    InvalidTransition,
    ListingNotAvailable,
    NotFoundError,
    StayLengthError,
    ValidationError,
)
from rentcore.core.transitions import compare_and_set
from rentcore.domain.booking_state import (
    BLOCKING_STATUSES,
    CANCELLABLE_STATUSES,
    CANCELLED_BY,
    assert_booking_transition,
)
from rentcore.domain.cancellation_policy import calculate_refund
from rentcore.domain.escrow_state import DISBURSED_STATUSES
from rentcore.domain.pricing import PricingBreakdown, compute_pricing
from rentcore.gateways.base import PaymentHandle, PaymentMethod
from rentcore.models.booking import Booking
from rentcore.models.listing import CalendarBlock, Listing
from rentcore.models.user import User
from rentcore.services.audit_service import audit_service
from rentcore.services.commission_service import CommissionSettingsSnapshot, commission_service
from rentcore.services.escrow_service import escrow_service
from rentcore.services.gateway_service import gateway_service
from rentcore.services.notification_service import notification_service
from rentcore.utils.reference_numbers import generate_booking_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Quote:
    """Priced stay before a booking exists."""

    listing: Listing
    start_date: date
    end_date: date
    check_in_at: datetime
    check_out_at: datetime
    pricing: PricingBreakdown
    commission_category: str
    commission_rate_version: int


def stay_window(listing: Listing, start_date: date, end_date: date) -> tuple[datetime, datetime]:
    """Check-in and check-out instants for a date range."""
    check_in_hour = listing.check_in_hour if listing.check_in_hour is not None else settings.check_in_hour
    check_out_hour = (
        listing.check_out_hour if listing.check_out_hour is not None else settings.check_out_hour
    )
    return (
        datetime.combine(start_date, time(hour=check_in_hour), tzinfo=UTC),
        datetime.combine(end_date, time(hour=check_out_hour), tzinfo=UTC),
    )


def actor_role(booking: Booking, user: User) -> str | None:
    """The user's relation to a booking: guest, host, admin or None."""
    if user.is_admin:
        return "admin"
    if user.id == booking.guest_id:
        return "guest"
    if user.id == booking.host_id:
        return "host"
    return None


class BookingService:
    """Service for the booking state machine."""

    # ==================== LOOKUPS ====================

    async def get(self, db: AsyncSession, booking_id: UUID) -> Booking:
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))
        return booking

    async def find_by_ref(self, db: AsyncSession, ref: str) -> Booking | None:
        """Find a booking by id or booking number."""
        try:
            criterion = Booking.id == uuid.UUID(str(ref))
        except ValueError:
            criterion = Booking.booking_number == ref
        result = await db.execute(
            select(Booking).where(criterion).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_listing(self, db: AsyncSession, listing_id: UUID, lock: bool = False) -> Listing:
        stmt = select(Listing).where(Listing.id == listing_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        listing = result.scalar_one_or_none()
        if listing is None:
            raise NotFoundError("Listing", str(listing_id))
        return listing

    async def list_for_user(
        self,
        db: AsyncSession,
        user: User,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Booking]:
        stmt = select(Booking)
        if not user.is_admin:
            stmt = stmt.where(or_(Booking.guest_id == user.id, Booking.host_id == user.id))
        if status:
            stmt = stmt.where(Booking.status == status)
        result = await db.execute(
            stmt.order_by(Booking.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    def ensure_access(self, booking: Booking, user: User) -> str:
        role = actor_role(booking, user)
        if role is None:
            raise AuthorizationError("You don't have access to this booking")
        return role

    # ==================== AVAILABILITY ====================

    async def is_available(
        self,
        db: AsyncSession,
        listing_id: UUID,
        start_date: date,
        end_date: date,
        exclude_booking_id: UUID | None = None,
    ) -> bool:
        """No blocking booking or calendar block overlaps [start, end)."""
        booking_stmt = select(Booking.id).where(
            Booking.listing_id == listing_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.start_date < end_date,
            Booking.end_date > start_date,
        )
        if exclude_booking_id is not None:
            booking_stmt = booking_stmt.where(Booking.id != exclude_booking_id)
        if (await db.execute(booking_stmt.limit(1))).scalar_one_or_none() is not None:
            return False

        block_stmt = select(CalendarBlock.id).where(
            CalendarBlock.listing_id == listing_id,
            and_(CalendarBlock.start_date < end_date, CalendarBlock.end_date > start_date),
        )
        return (await db.execute(block_stmt.limit(1))).scalar_one_or_none() is None

    # ==================== QUOTE / CREATE ====================

    def _validate_request(
        self,
        listing: Listing,
        guest: User,
        start_date: date,
        end_date: date,
        adults: int,
        children: int,
        now: datetime,
    ) -> int:
        if end_date <= start_date:
            raise InvalidDateRange()
        if start_date < now.date():
            raise InvalidDateRange("Start date cannot be in the past")
        if listing.status != "active":
            raise ListingNotAvailable()
        if listing.host_id == guest.id:
            raise ValidationError("Hosts cannot book their own listing")

        nights = (end_date - start_date).days
        if nights < listing.min_stay:
            raise StayLengthError(f"Minimum stay is {listing.min_stay} nights")
        if nights > listing.max_stay:
            raise StayLengthError(f"Maximum stay is {listing.max_stay} nights")

        if adults < 1:
            raise ValidationError("At least one adult is required")
        if adults + children > listing.max_guests:
            raise ValidationError(f"This listing accommodates at most {listing.max_guests} guests")
        if listing.currency not in settings.supported_currencies:
            raise ValidationError(f"Currency {listing.currency} is not supported")
        return nights

    def price(
        self,
        listing: Listing,
        nights: int,
        snapshot: CommissionSettingsSnapshot,
    ) -> tuple[PricingBreakdown, str, int]:
        category, rate = snapshot.resolve(listing.category, listing.base_price, listing.currency)
        pricing = compute_pricing(
            base_price=listing.base_price,
            nights=nights,
            cleaning_fee=listing.cleaning_fee,
            guest_fee_rate=snapshot.guest_fee_rate,
            host_commission_rate=rate,
            currency=listing.currency,
            security_deposit=listing.security_deposit,
        )
        return pricing, category, snapshot.version_of(category)

    async def quote(
        self,
        db: AsyncSession,
        guest: User,
        listing_id: UUID,
        start_date: date,
        end_date: date,
        now: datetime,
        adults: int = 1,
        children: int = 0,
        lock_listing: bool = False,
    ) -> Quote:
        """Validate a request and price it without side effects.

        Raises:
            InvalidDateRange, StayLengthError, ValidationError: Bad request
            ListingNotAvailable: Listing is not bookable
            DatesNotAvailable: Dates overlap another booking or block
        """
        listing = await self.get_listing(db, listing_id, lock=lock_listing)
        nights = self._validate_request(listing, guest, start_date, end_date, adults, children, now)

        if not await self.is_available(db, listing.id, start_date, end_date):
            raise DatesNotAvailable()

        snapshot = await commission_service.load_snapshot(db)
        pricing, category, version = self.price(listing, nights, snapshot)
        check_in_at, check_out_at = stay_window(listing, start_date, end_date)
        return Quote(
            listing=listing,
            start_date=start_date,
            end_date=end_date,
            check_in_at=check_in_at,
            check_out_at=check_out_at,
            pricing=pricing,
            commission_category=category,
            commission_rate_version=version,
        )

    async def create(
        self,
        db: AsyncSession,
        guest: User,
        listing_id: UUID,
        start_date: date,
        end_date: date,
        payment_method: str,
        now: datetime,
        adults: int = 1,
        children: int = 0,
        infants: int = 0,
        contact: dict | None = None,
    ) -> tuple[Booking, PaymentHandle]:
        """Create a ``pending_payment`` booking together with its payment vehicle.

        If the payment vehicle cannot be created the booking is removed
        again, so no booking is left without a way to pay for it.
        """
        method = PaymentMethod(payment_method)
        if method == PaymentMethod.CASH_VOUCHER:
            contact = contact or {}
            if not (contact.get("full_name") or guest.full_name) or not (
                contact.get("phone") or guest.phone
            ):
                raise ValidationError("Full name and phone number are required for cash payment")

        quote = await self.quote(
            db, guest, listing_id, start_date, end_date, now, adults, children, lock_listing=True
        )
        listing, pricing = quote.listing, quote.pricing
        if method == PaymentMethod.CASH_VOUCHER and pricing.currency not in settings.voucher_currencies:
            raise ValidationError(f"Cash vouchers are not available in {pricing.currency}")

        adapter = gateway_service.get(method)
        booking = Booking(
            id=uuid.uuid4(),
            booking_number=await generate_booking_number(db),
            listing_id=listing.id,
            guest_id=guest.id,
            host_id=listing.host_id,
            start_date=start_date,
            end_date=end_date,
            check_in_at=quote.check_in_at,
            check_out_at=quote.check_out_at,
            adults=adults,
            children=children,
            infants=infants,
            base_price=pricing.base_price,
            nights=pricing.nights,
            subtotal=pricing.subtotal,
            cleaning_fee=pricing.cleaning_fee,
            guest_service_fee=pricing.guest_service_fee,
            host_commission=pricing.host_commission,
            service_fee=pricing.service_fee,
            total_amount=pricing.total_amount,
            host_payout=pricing.host_payout,
            platform_revenue=pricing.platform_revenue,
            currency=pricing.currency,
            security_deposit=pricing.security_deposit,
            guest_fee_rate=pricing.guest_fee_rate,
            host_commission_rate=pricing.host_commission_rate,
            commission_category=quote.commission_category,
            commission_rate_version=quote.commission_rate_version,
            payment_method=method.value,
            payment_status="pending",
            payment_expires_at=now + adapter.validity,
            status="pending_payment",
            created_at=now,
            updated_at=now,
        )
        db.add(booking)
        await db.flush()

        try:
            async with db.begin_nested():
                handle = await adapter.initiate(db, booking, guest, contact)
        except Exception:
            logger.warning(
                f"Payment vehicle for booking {booking.booking_number} failed, removing booking"
            )
            await db.delete(booking)
            await db.flush()
            raise

        logger.info(
            f"Booking {booking.booking_number} created for listing {listing.id}: "
            f"{booking.total_amount} {booking.currency} via {method.value}"
        )

        await notification_service.notify(
            booking.host_id,
            notification_service.BOOKING_REQUESTED,
            {"booking_id": str(booking.id), "booking_number": booking.booking_number},
        )
        if method == PaymentMethod.CASH_VOUCHER:
            await notification_service.send_email(
                notification_service.VOUCHER_ISSUED,
                (contact or {}).get("email") or guest.email,
                {
                    "booking_number": booking.booking_number,
                    "voucher_number": handle.voucher_number,
                    "amount": handle.amount,
                    "currency": handle.currency,
                    "expires_at": handle.expires_at.isoformat(),
                    "instructions": handle.instructions,
                },
            )

        return booking, handle

    # ==================== TRANSITIONS ====================

    async def transition(
        self,
        db: AsyncSession,
        booking: Booking,
        expected: str | tuple[str, ...],
        target: str,
        extra_criterion=None,
        **values,
    ) -> bool:
        """Compare-and-set the booking status. Returns False if the row moved on."""
        for source in (expected,) if isinstance(expected, str) else expected:
            assert_booking_transition(source, target)

        criterion = Booking.id == booking.id
        if extra_criterion is not None:
            criterion = criterion & extra_criterion
        return await compare_and_set(
            db, Booking, criterion, expected, instance=booking, status=target, **values
        )

    async def expire_if_overdue(self, db: AsyncSession, booking: Booking, now: datetime) -> bool:
        """Move an unpaid booking past its payment window to ``expired``."""
        if booking.status != "pending_payment":
            return False
        adapter = gateway_service.get(booking.payment_method)
        handle = await adapter.get_handle(db, booking.id)
        if handle is None or not adapter.is_expired(handle, now):
            return False

        changed = await self.transition(
            db,
            booking,
            "pending_payment",
            "expired",
            extra_criterion=Booking.payment_expires_at < now,
            payment_status="canceled",
            expired_at=now,
        )
        if not changed:
            return False

        await adapter.expire(db, booking.id)
        logger.info(f"Booking {booking.booking_number} expired unpaid")
        await notification_service.notify(
            booking.guest_id,
            notification_service.BOOKING_EXPIRED,
            {"booking_id": str(booking.id), "booking_number": booking.booking_number},
        )
        return True

    async def accept(self, db: AsyncSession, booking_id: UUID, host: User, now: datetime) -> Booking:
        """Host accepts a paid booking request."""
        booking = await self.get(db, booking_id)
        if booking.host_id != host.id and not host.is_admin:
            raise AuthorizationError("Only the host can accept this booking")

        if not await self.transition(db, booking, "paid", "confirmed", confirmed_at=now):
            raise InvalidTransition("booking", booking.status, "confirmed")

        logger.info(f"Booking {booking.booking_number} accepted by host {host.id}")
        await notification_service.notify(
            booking.guest_id,
            notification_service.BOOKING_CONFIRMED,
            {"booking_id": str(booking.id), "booking_number": booking.booking_number},
        )
        return booking

    async def reject(
        self, db: AsyncSession, booking_id: UUID, host: User, now: datetime, reason: str | None = None
    ) -> Booking:
        """Host declines a paid booking request; the guest is refunded in full."""
        booking = await self.get(db, booking_id)
        if booking.host_id != host.id and not host.is_admin:
            raise AuthorizationError("Only the host can reject this booking")
        if booking.status != "paid":
            raise InvalidTransition("booking", booking.status, "cancelled_by_host")
        return await self._cancel(db, booking, "host", host.id, reason or "Rejected by host", now)

    async def complete(self, db: AsyncSession, booking_id: UUID, user: User, now: datetime) -> Booking:
        """Host marks an active stay as completed ahead of the automatic sweep."""
        booking = await self.get(db, booking_id)
        if booking.host_id != user.id and not user.is_admin:
            raise AuthorizationError("Only the host can complete this booking")

        if not await self.transition(
            db, booking, "active", "completed", completed_at=now, auto_completed=False
        ):
            raise InvalidTransition("booking", booking.status, "completed")

        logger.info(f"Booking {booking.booking_number} completed by {user.id}")
        await notification_service.notify_many(
            [booking.guest_id, booking.host_id],
            notification_service.BOOKING_COMPLETED,
            {"booking_id": str(booking.id)},
        )
        return booking

    async def cancel(
        self,
        db: AsyncSession,
        booking_id: UUID,
        user: User,
        now: datetime,
        reason: str | None = None,
    ) -> Booking:
        """Cancel a booking that has not started yet."""
        booking = await self.get(db, booking_id)
        role = self.ensure_access(booking, user)
        return await self._cancel(db, booking, role, user.id, reason, now)

    async def cancel_as_system(
        self, db: AsyncSession, booking: Booking, reason: str, now: datetime
    ) -> Booking:
        return await self._cancel(db, booking, "admin", None, reason, now)

    async def _cancel(
        self,
        db: AsyncSession,
        booking: Booking,
        role: str,
        actor_id: UUID | None,
        reason: str | None,
        now: datetime,
    ) -> Booking:
        target = CANCELLED_BY[role]
        prior = booking.status
        if prior not in CANCELLABLE_STATUSES:
            raise InvalidTransition("booking", prior, target)
        if prior != "pending_payment":
            await self._ensure_refundable(db, booking)

        if not await self.transition(
            db,
            booking,
            prior,
            target,
            cancelled_by_id=actor_id,
            cancellation_reason=reason,
            cancelled_at=now,
        ):
            current = await self.get(db, booking.id)
            raise InvalidTransition("booking", current.status, target)

        adapter = gateway_service.get(booking.payment_method)
        if prior == "pending_payment":
            await adapter.cancel(db, booking.id)
            await db.execute(
                update(Booking)
                .where(Booking.id == booking.id)
                .values(payment_status="canceled")
                .execution_options(synchronize_session=False)
            )
        else:
            await self._refund_captured(db, booking, role, actor_id, now)

        await db.refresh(booking)
        await audit_service.log_status_change(
            db,
            actor_id,
            "booking_cancel",
            "booking",
            booking.id,
            prior,
            target,
            reason=reason,
            refund_amount=booking.refund_amount,
        )
        logger.info(f"Booking {booking.booking_number} {target} (was {prior})")
        await notification_service.notify_many(
            [booking.guest_id, booking.host_id],
            notification_service.BOOKING_CANCELLED,
            {
                "booking_id": str(booking.id),
                "cancelled_by": role,
                "refund_amount": booking.refund_amount,
                "currency": booking.currency,
            },
        )
        return booking

    async def _ensure_refundable(self, db: AsyncSession, booking: Booking) -> None:
        """Reject a cancellation whose escrow cannot be split.

        Raises:
            EscrowFrozen: If a dispute holds the escrow
            ConflictError: If the funds were already disbursed
        """
        escrow = await escrow_service.get(db, booking.id)
        if escrow is None:
            return
        if escrow.status in DISBURSED_STATUSES:
            raise ConflictError(f"Escrow already {escrow.status}; the booking cannot be refunded")
        if escrow.status == "frozen" and await escrow_service.has_active_dispute(db, booking.id):
            raise EscrowFrozen("Booking cannot be cancelled while a dispute is open")

    async def _refund_captured(
        self,
        db: AsyncSession,
        booking: Booking,
        role: str,
        actor_id: UUID | None,
        now: datetime,
    ) -> None:
        """Settle the escrow of a cancelled, already-paid booking right away.

        An escrow frozen by an admin without a dispute is split directly.
        """
        escrow = await escrow_service.get(db, booking.id)
        if escrow is None:
            return

        listing = await self.get_listing(db, booking.listing_id)
        refund = calculate_refund(
            listing.cancellation_policy,
            role,
            subtotal=booking.subtotal,
            cleaning_fee=booking.cleaning_fee,
            guest_service_fee=booking.guest_service_fee,
            booked_at=booking.created_at,
            check_in_at=booking.check_in_at,
            cancelled_at=now,
        )
        guest_share = min(refund.total, escrow.held_amount)

        if escrow.status == "held":
            await escrow_service.freeze(db, booking.id, "cancellation", now, actor_id)
        await escrow_service.split(
            db,
            booking.id,
            host_share=escrow.held_amount - guest_share,
            guest_share=guest_share,
            resolver_id=actor_id,
            now=now,
            note=f"Cancelled by {role} ({refund.subtotal_percent}% of stay refunded)",
        )

        if guest_share == 0:
            payment_status = "succeeded"
        elif guest_share == booking.total_amount:
            payment_status = "refunded"
        else:
            payment_status = "partially_refunded"
        await db.execute(
            update(Booking)
            .where(Booking.id == booking.id)
            .values(refund_amount=guest_share, payment_status=payment_status)
            .execution_options(synchronize_session=False)
        )

        if guest_share and booking.payment_method == PaymentMethod.CARD.value:
            handle = await gateway_service.card.get_handle(db, booking.id)
            if handle is not None:
                result = await gateway_service.card_processor.process_refund(
                    handle.intent_id, guest_share, f"Booking {booking.booking_number} cancelled by {role}"
                )
                if not result.success:
                    logger.error(
                        f"Card refund for booking {booking.booking_number} failed: {result.error_message}"
                    )
        elif guest_share:
            logger.info(
                f"Cash refund of {guest_share} {booking.currency} owed for booking {booking.booking_number}"
            )


booking_service = BookingService()
