"""Escrow ledger.

The only component that mutates held-fund state. Every transition is a
compare-and-set on the escrow row and appends an ``EscrowEvent``.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import case, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.config import settings
from rentcore.core.exceptions import (
    ConflictError,
    DuplicateEscrowHold,
    EscrowFrozen,
    InvalidTransition,
    LedgerIntegrityError,
    NotFoundError,
    ValidationError,
)
from rentcore.core.transitions import compare_and_set
from rentcore.domain.dispute_state import ACTIVE_DISPUTE_STATUSES
from rentcore.domain.escrow_state import DISBURSED_STATUSES, assert_escrow_transition
from rentcore.domain.pricing import round_half_up
from rentcore.models.booking import Booking
from rentcore.models.dispute import Dispute
from rentcore.models.escrow import Escrow, EscrowEvent
from rentcore.services.audit_service import audit_service
from rentcore.services.notification_service import notification_service
from rentcore.utils.reference_numbers import generate_release_reference

logger = logging.getLogger(__name__)

FREEZE_REASON_MAX_LENGTH = 50


def _no_active_dispute(booking_id: UUID):
    return ~exists().where(
        Dispute.booking_id == booking_id,
        Dispute.status.in_(ACTIVE_DISPUTE_STATUSES),
    )


class EscrowService:
    """Service for the hold / release / freeze / split lifecycle."""

    async def get(self, db: AsyncSession, booking_id: UUID) -> Escrow | None:
        result = await db.execute(
            select(Escrow)
            .where(Escrow.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_404(self, db: AsyncSession, booking_id: UUID) -> Escrow:
        escrow = await self.get(db, booking_id)
        if escrow is None:
            raise NotFoundError("Escrow", str(booking_id))
        return escrow

    async def get_events(self, db: AsyncSession, escrow_id: UUID) -> list[EscrowEvent]:
        result = await db.execute(
            select(EscrowEvent)
            .where(EscrowEvent.escrow_id == escrow_id)
            .order_by(EscrowEvent.created_at, EscrowEvent.id)
        )
        return list(result.scalars().all())

    async def has_active_dispute(self, db: AsyncSession, booking_id: UUID) -> bool:
        result = await db.execute(
            select(Dispute.id).where(
                Dispute.booking_id == booking_id,
                Dispute.status.in_(ACTIVE_DISPUTE_STATUSES),
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def _record(
        self,
        db: AsyncSession,
        escrow: Escrow,
        action: str,
        from_status: str | None,
        now: datetime,
        actor_id: UUID | None = None,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> EscrowEvent:
        event = EscrowEvent(
            escrow_id=escrow.id,
            action=action,
            from_status=from_status,
            to_status=escrow.status,
            amount=escrow.held_amount,
            actor_id=actor_id,
            reason=reason,
            details=details,
            created_at=now,
        )
        db.add(event)
        await db.flush()
        return event

    async def hold(self, db: AsyncSession, booking: Booking, now: datetime) -> Escrow:
        """Create the held entry for a captured booking.

        Raises:
            DuplicateEscrowHold: If the booking already has an escrow entry
        """
        if await self.get(db, booking.id) is not None:
            raise DuplicateEscrowHold(str(booking.id))

        escrow = Escrow(
            booking_id=booking.id,
            host_id=booking.host_id,
            held_amount=booking.total_amount,
            currency=booking.currency,
            payment_method=booking.payment_method,
            status="held",
            held_at=now,
            release_eligible_at=booking.check_out_at
            + timedelta(hours=settings.escrow_release_delay_hours),
        )
        try:
            async with db.begin_nested():
                db.add(escrow)
        except IntegrityError as e:
            raise DuplicateEscrowHold(str(booking.id)) from e

        await self._record(db, escrow, "captured", None, now, reason=booking.payment_method)
        logger.info(
            f"Escrow held for booking {booking.booking_number}: {escrow.held_amount} {escrow.currency}, "
            f"release eligible at {escrow.release_eligible_at.isoformat()}"
        )
        return escrow

    async def release(self, db: AsyncSession, booking_id: UUID, now: datetime) -> bool:
        """Release held funds once eligible and undisputed.

        Returns:
            True if the escrow moved to ``released``; False is a normal no-op
        """
        escrow = await self.get(db, booking_id)
        if escrow is None or escrow.status != "held" or now < escrow.release_eligible_at:
            return False

        changed = await compare_and_set(
            db,
            Escrow,
            (Escrow.id == escrow.id)
            & (Escrow.release_eligible_at <= now)
            & _no_active_dispute(booking_id),
            "held",
            instance=escrow,
            status="released",
            release_type="automatic",
            release_reference=generate_release_reference(now),
            released_at=now,
        )
        if not changed:
            logger.info(f"Escrow release skipped for booking {booking_id}")
            return False

        await self._record(db, escrow, "released", "held", now, reason="automatic")
        await notification_service.notify(
            escrow.host_id,
            notification_service.ESCROW_RELEASED,
            {"booking_id": str(booking_id), "amount": escrow.held_amount, "currency": escrow.currency},
        )
        logger.info(f"Escrow released for booking {booking_id} ({escrow.release_reference})")
        return True

    async def manual_release(
        self,
        db: AsyncSession,
        booking_id: UUID,
        admin_id: UUID,
        now: datetime,
        note: str | None = None,
    ) -> Escrow:
        """Admin override of automatic release, without the eligibility wait.

        Raises:
            EscrowFrozen: If the escrow is frozen or a dispute is open
            InvalidTransition: If the funds were already disbursed
        """
        escrow = await self.get_or_404(db, booking_id)
        if escrow.status == "frozen":
            raise EscrowFrozen()
        assert_escrow_transition(escrow.status, "released")
        if await self.has_active_dispute(db, booking_id):
            raise EscrowFrozen("Escrow cannot be released while a dispute is open")

        changed = await compare_and_set(
            db,
            Escrow,
            (Escrow.id == escrow.id) & _no_active_dispute(booking_id),
            "held",
            instance=escrow,
            status="released",
            release_type="manual",
            release_reference=generate_release_reference(now),
            released_at=now,
            released_by=admin_id,
        )
        if not changed:
            current = await self.get(db, booking_id)
            raise InvalidTransition("escrow", current.status if current else None, "released")

        await self._record(db, escrow, "released", "held", now, actor_id=admin_id, reason=note or "manual")
        await audit_service.log_status_change(
            db,
            admin_id,
            "escrow_manual_release",
            "escrow",
            escrow.id,
            "held",
            "released",
            booking_id=booking_id,
            amount=escrow.held_amount,
            release_reference=escrow.release_reference,
            note=note,
        )
        await notification_service.notify(
            escrow.host_id,
            notification_service.ESCROW_RELEASED,
            {"booking_id": str(booking_id), "amount": escrow.held_amount, "currency": escrow.currency},
        )
        logger.info(f"Escrow manually released for booking {booking_id} by admin {admin_id}")
        return escrow

    async def freeze(
        self,
        db: AsyncSession,
        booking_id: UUID,
        reason: str,
        now: datetime,
        actor_id: UUID | None = None,
    ) -> Escrow:
        """Stop automatic release. Freezing a frozen escrow is a no-op.

        Raises:
            ValidationError: If the reason is empty or longer than 50 characters
            ConflictError: If the funds were already released or split
        """
        if not reason or len(reason) > FREEZE_REASON_MAX_LENGTH:
            raise ValidationError(
                f"Freeze reason must be 1 to {FREEZE_REASON_MAX_LENGTH} characters"
            )
        escrow = await self.get_or_404(db, booking_id)
        if escrow.status == "frozen":
            return escrow
        if escrow.status in DISBURSED_STATUSES:
            raise ConflictError(f"Escrow already {escrow.status}; disbursed funds cannot be frozen")

        changed = await compare_and_set(
            db,
            Escrow,
            Escrow.id == escrow.id,
            "held",
            instance=escrow,
            status="frozen",
            freeze_reason=reason,
            frozen_at=now,
        )
        if not changed:
            current = await self.get_or_404(db, booking_id)
            if current.status == "frozen":
                return current
            raise ConflictError(f"Escrow already {current.status}; disbursed funds cannot be frozen")

        await self._record(db, escrow, "frozen", "held", now, actor_id=actor_id, reason=reason)
        await notification_service.notify(
            escrow.host_id,
            notification_service.ESCROW_FROZEN,
            {"booking_id": str(booking_id), "reason": reason},
        )
        logger.info(f"Escrow frozen for booking {booking_id}: {reason}")
        return escrow

    async def unfreeze(
        self,
        db: AsyncSession,
        booking_id: UUID,
        now: datetime,
        actor_id: UUID | None = None,
        note: str | None = None,
    ) -> Escrow:
        """Return a frozen escrow to ``held`` so normal release applies again."""
        escrow = await self.get_or_404(db, booking_id)
        assert_escrow_transition(escrow.status, "held")

        changed = await compare_and_set(
            db,
            Escrow,
            Escrow.id == escrow.id,
            "frozen",
            instance=escrow,
            status="held",
            freeze_reason=None,
            frozen_at=None,
        )
        if not changed:
            current = await self.get(db, booking_id)
            raise InvalidTransition("escrow", current.status if current else None, "held")

        await self._record(db, escrow, "unfrozen", "frozen", now, actor_id=actor_id, reason=note)
        logger.info(f"Escrow unfrozen for booking {booking_id}")
        return escrow

    async def split(
        self,
        db: AsyncSession,
        booking_id: UUID,
        host_share: int,
        guest_share: int,
        resolver_id: UUID | None,
        now: datetime,
        note: str | None = None,
    ) -> Escrow:
        """Divide a frozen escrow between host and guest.

        Raises:
            InvalidTransition: If the escrow is not frozen
            LedgerIntegrityError: If the shares do not add up to the held amount
        """
        escrow = await self.get_or_404(db, booking_id)
        assert_escrow_transition(escrow.status, "split")

        if host_share < 0 or guest_share < 0:
            raise LedgerIntegrityError("Split shares cannot be negative")
        if host_share + guest_share != escrow.held_amount:
            raise LedgerIntegrityError(
                f"Split shares {host_share} + {guest_share} do not equal held amount {escrow.held_amount}"
            )

        changed = await compare_and_set(
            db,
            Escrow,
            Escrow.id == escrow.id,
            "frozen",
            instance=escrow,
            status="split",
            host_share=host_share,
            guest_share=guest_share,
            resolved_by=resolver_id,
            resolved_at=now,
        )
        if not changed:
            current = await self.get(db, booking_id)
            raise InvalidTransition("escrow", current.status if current else None, "split")

        await self._record(
            db,
            escrow,
            "split",
            "frozen",
            now,
            actor_id=resolver_id,
            reason=note,
            details={"host_share": host_share, "guest_share": guest_share},
        )
        logger.info(
            f"Escrow split for booking {booking_id}: host {host_share}, guest {guest_share}"
        )
        return escrow

    async def attach_payout(self, db: AsyncSession, escrow_ids: list[UUID], payout_id: UUID) -> int:
        """Mark disbursed escrows as included in a payout."""
        changed = 0
        for escrow_id in escrow_ids:
            if await compare_and_set(
                db,
                Escrow,
                (Escrow.id == escrow_id) & Escrow.payout_id.is_(None),
                DISBURSED_STATUSES,
                payout_id=payout_id,
            ):
                changed += 1
        return changed

    async def find_releasable(self, db: AsyncSession, now: datetime, limit: int = 500) -> list[UUID]:
        """Booking ids whose escrow is held and past its release time."""
        result = await db.execute(
            select(Escrow.booking_id)
            .where(Escrow.status == "held", Escrow.release_eligible_at <= now)
            .order_by(Escrow.release_eligible_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    # ==================== ADMIN QUERIES ====================

    async def list_escrows(
        self,
        db: AsyncSession,
        status: str | None = None,
        currency: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Escrow], int]:
        """Page of escrow entries, newest first, with the total match count."""
        criteria = []
        if status:
            criteria.append(Escrow.status == status)
        if currency:
            criteria.append(Escrow.currency == currency.upper())

        total = await db.scalar(select(func.count(Escrow.id)).where(*criteria))
        result = await db.execute(
            select(Escrow)
            .where(*criteria)
            .order_by(Escrow.held_at.desc(), Escrow.id)
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total or 0

    async def stats(self, db: AsyncSession) -> dict[str, list[dict[str, Any]]]:
        """Escrow totals grouped by status and by currency."""
        status_rows = await db.execute(
            select(Escrow.status, func.count(Escrow.id), func.sum(Escrow.held_amount))
            .group_by(Escrow.status)
            .order_by(Escrow.status)
        )
        by_status = [
            {
                "status": status,
                "count": count,
                "total_amount": int(total),
                "average_amount": round_half_up(Decimal(int(total)) / count),
            }
            for status, count, total in status_rows.all()
        ]

        held = case((Escrow.status == "held", Escrow.held_amount), else_=0)
        released = case((Escrow.status == "released", Escrow.held_amount), else_=0)
        currency_rows = await db.execute(
            select(
                Escrow.currency,
                func.count(Escrow.id),
                func.sum(Escrow.held_amount),
                func.sum(held),
                func.sum(released),
            )
            .group_by(Escrow.currency)
            .order_by(Escrow.currency)
        )
        by_currency = [
            {
                "currency": currency,
                "count": count,
                "total_amount": int(total),
                "held_amount": int(held_total),
                "released_amount": int(released_total),
            }
            for currency, count, total, held_total, released_total in currency_rows.all()
        ]
        return {"by_status": by_status, "by_currency": by_currency}


escrow_service = EscrowService()
