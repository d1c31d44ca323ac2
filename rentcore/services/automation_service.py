"""Time-driven booking and escrow transitions.

Each sweep selects candidates, then applies every transition through the
same compare-and-set path as the interactive commands, so a sweep racing
a user action can only lose cleanly.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.config import settings
from rentcore.core.exceptions import AppException
from rentcore.domain.dispute_state import ACTIVE_DISPUTE_STATUSES
from rentcore.models.booking import Booking
from rentcore.models.dispute import Dispute
from rentcore.services.booking_service import booking_service
from rentcore.services.escrow_service import escrow_service
from rentcore.services.notification_service import notification_service

logger = logging.getLogger(__name__)

BATCH_SIZE = 500


class AutomationService:
    """Periodic sweeps: expiry, activation, completion, release, host deadlines."""

    async def _bookings(self, db: AsyncSession, *criteria) -> list[Booking]:
        result = await db.execute(select(Booking).where(*criteria).limit(BATCH_SIZE))
        return list(result.scalars().all())

    async def expire_overdue_payments(self, db: AsyncSession, now: datetime) -> int:
        """``pending_payment`` bookings past their payment window become ``expired``."""
        count = 0
        for booking in await self._bookings(
            db, Booking.status == "pending_payment", Booking.payment_expires_at < now
        ):
            if await booking_service.expire_if_overdue(db, booking, now):
                count += 1
        if count:
            logger.info(f"Expired {count} unpaid bookings")
        return count

    async def activate_due(self, db: AsyncSession, now: datetime) -> int:
        """``confirmed`` bookings whose check-in time has come become ``active``."""
        count = 0
        for booking in await self._bookings(
            db, Booking.status == "confirmed", Booking.check_in_at <= now
        ):
            if await booking_service.transition(db, booking, "confirmed", "active", activated_at=now):
                count += 1
                logger.info(f"Booking {booking.booking_number} auto-activated")
        return count

    async def complete_due(self, db: AsyncSession, now: datetime) -> int:
        """``active`` bookings past checkout plus grace become ``completed``.

        Bookings with an open or pending dispute are left alone.
        """
        cutoff = now - timedelta(hours=settings.completion_grace_hours)
        undisputed = ~exists().where(
            Dispute.booking_id == Booking.id,
            Dispute.status.in_(ACTIVE_DISPUTE_STATUSES),
        )
        count = 0
        for booking in await self._bookings(
            db, Booking.status == "active", Booking.check_out_at <= cutoff, undisputed
        ):
            if await booking_service.transition(
                db,
                booking,
                "active",
                "completed",
                extra_criterion=~exists().where(
                    Dispute.booking_id == booking.id,
                    Dispute.status.in_(ACTIVE_DISPUTE_STATUSES),
                ),
                completed_at=now,
                auto_completed=True,
            ):
                count += 1
                logger.info(f"Booking {booking.booking_number} auto-completed")
                await notification_service.notify_many(
                    [booking.guest_id, booking.host_id],
                    notification_service.BOOKING_COMPLETED,
                    {"booking_id": str(booking.id)},
                )
        return count

    async def release_eligible_escrows(self, db: AsyncSession, now: datetime) -> int:
        """Release every held escrow past its eligibility time."""
        count = 0
        for booking_id in await escrow_service.find_releasable(db, now, BATCH_SIZE):
            if await escrow_service.release(db, booking_id, now):
                count += 1
        if count:
            logger.info(f"Released {count} escrow entries")
        return count

    async def cancel_unanswered_requests(self, db: AsyncSession, now: datetime) -> int:
        """``paid`` requests the host did not answer in time are cancelled and refunded."""
        cutoff = now - timedelta(hours=settings.host_response_deadline_hours)
        count = 0
        for booking in await self._bookings(db, Booking.status == "paid", Booking.paid_at <= cutoff):
            try:
                async with db.begin_nested():
                    await booking_service.cancel_as_system(
                        db, booking, "Host did not respond in time", now
                    )
                count += 1
            except AppException as e:
                logger.warning(f"Could not cancel unanswered booking {booking.booking_number}: {e.detail}")
        return count

    async def run_all(self, db: AsyncSession, now: datetime) -> dict[str, int]:
        """Run every sweep once, in lifecycle order."""
        return {
            "expired": await self.expire_overdue_payments(db, now),
            "host_deadline_cancelled": await self.cancel_unanswered_requests(db, now),
            "activated": await self.activate_due(db, now),
            "completed": await self.complete_due(db, now),
            "released": await self.release_eligible_escrows(db, now),
        }


automation_service = AutomationService()
