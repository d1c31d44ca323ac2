"""Dispute lifecycle: open, evidence and notes, review, resolve or close."""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.config import settings
from rentcore.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from rentcore.core.transitions import compare_and_set
from rentcore.domain.booking_state import DISPUTABLE_STATUSES
from rentcore.domain.dispute_state import (
    ACTIVE_DISPUTE_STATUSES,
    PRIORITIES,
    assert_dispute_transition,
    is_terminal,
)
from rentcore.domain.escrow_state import DISBURSED_STATUSES
from rentcore.domain.pricing import round_half_up
from rentcore.models.booking import Booking
from rentcore.models.dispute import DISPUTE_REASONS, Dispute, DisputeEvidence, DisputeNote
from rentcore.models.user import User
from rentcore.services.audit_service import audit_service
from rentcore.services.booking_service import actor_role, booking_service
from rentcore.services.escrow_service import escrow_service
from rentcore.services.notification_service import notification_service

logger = logging.getLogger(__name__)

EVIDENCE_TYPES = ("image", "document", "message")


class DisputeService:
    """Service for dispute lifecycle."""

    async def _get_dispute(self, db: AsyncSession, dispute_id: UUID) -> Dispute:
        result = await db.execute(
            select(Dispute)
            .where(Dispute.id == dispute_id)
            .execution_options(populate_existing=True)
        )
        dispute = result.scalar_one_or_none()
        if dispute is None:
            raise NotFoundError("Dispute", str(dispute_id))
        return dispute

    async def get(self, db: AsyncSession, dispute_id: UUID, user: User) -> tuple[Dispute, Booking]:
        """Load a dispute the user is allowed to see.

        Raises:
            AuthorizationError: If the user is not the guest, host or an admin
        """
        dispute = await self._get_dispute(db, dispute_id)
        booking = await booking_service.get(db, dispute.booking_id)
        if actor_role(booking, user) is None:
            raise AuthorizationError("You don't have access to this dispute")
        return dispute, booking

    async def get_notes(self, db: AsyncSession, dispute_id: UUID) -> list[DisputeNote]:
        result = await db.execute(
            select(DisputeNote)
            .where(DisputeNote.dispute_id == dispute_id)
            .order_by(DisputeNote.created_at, DisputeNote.id)
        )
        return list(result.scalars().all())

    async def get_evidence(self, db: AsyncSession, dispute_id: UUID) -> list[DisputeEvidence]:
        result = await db.execute(
            select(DisputeEvidence)
            .where(DisputeEvidence.dispute_id == dispute_id)
            .order_by(DisputeEvidence.created_at, DisputeEvidence.id)
        )
        return list(result.scalars().all())

    async def list_for_booking(self, db: AsyncSession, booking_id: UUID) -> list[Dispute]:
        result = await db.execute(
            select(Dispute).where(Dispute.booking_id == booking_id).order_by(Dispute.created_at)
        )
        return list(result.scalars().all())

    def _priority_for(self, amount: int) -> str:
        return "high" if amount > settings.high_priority_dispute_amount else "normal"

    async def open(
        self,
        db: AsyncSession,
        booking_id: UUID,
        reporter: User,
        reason: str,
        description: str,
        now: datetime,
    ) -> Dispute:
        """Open a dispute and freeze the booking's escrow.

        Raises:
            AuthorizationError: Reporter is not the booking's guest or host
            ValidationError: Unknown reason or empty description
            InvalidTransition: Booking is not confirmed, active or completed
            ConflictError: Another dispute is already open
        """
        booking = await booking_service.get(db, booking_id)
        role = actor_role(booking, reporter)
        if role not in ("guest", "host"):
            raise AuthorizationError("Only the guest or host can open a dispute")
        if reason not in DISPUTE_REASONS:
            raise ValidationError(f"Invalid dispute reason: {reason}")
        if not description or not description.strip():
            raise ValidationError("A description is required")
        if booking.status not in DISPUTABLE_STATUSES:
            raise InvalidTransition("booking", booking.status, "disputed")

        existing = await db.execute(
            select(Dispute.id).where(
                Dispute.booking_id == booking.id,
                Dispute.status.in_(ACTIVE_DISPUTE_STATUSES),
            )
        )
        if existing.first() is not None:
            raise ConflictError("A dispute is already open for this booking")

        escrow = await escrow_service.get(db, booking.id)
        if escrow is not None and escrow.status in DISBURSED_STATUSES:
            raise ConflictError(f"Escrow already {escrow.status}; the booking can no longer be disputed")

        dispute = Dispute(
            booking_id=booking.id,
            reporter_id=reporter.id,
            reporter_role=role,
            reason=reason,
            description=description.strip(),
            status="open",
            priority=self._priority_for(escrow.held_amount if escrow else booking.total_amount),
            created_at=now,
            updated_at=now,
        )
        db.add(dispute)
        await db.flush()

        if escrow is not None:
            await escrow_service.freeze(db, booking.id, "dispute", now, reporter.id)

        if booking.status in ("confirmed", "active"):
            prior = booking.status
            if not await booking_service.transition(
                db, booking, prior, "disputed", status_before_dispute=prior
            ):
                current = await booking_service.get(db, booking.id)
                raise InvalidTransition("booking", current.status, "disputed")

        await audit_service.log_status_change(
            db, reporter.id, "dispute_open", "dispute", dispute.id, None, "open",
            booking_id=booking.id, reason=reason,
        )
        logger.info(f"Dispute {dispute.id} opened on booking {booking.booking_number} by {role}")

        other_party = booking.host_id if role == "guest" else booking.guest_id
        await notification_service.notify(
            other_party,
            notification_service.DISPUTE_OPENED,
            {"dispute_id": str(dispute.id), "booking_id": str(booking.id), "reason": reason},
        )
        return dispute

    async def add_note(
        self, db: AsyncSession, dispute_id: UUID, author: User, message: str, now: datetime
    ) -> DisputeNote:
        dispute, _ = await self.get(db, dispute_id, author)
        if not message or not message.strip():
            raise ValidationError("Note cannot be empty")
        if is_terminal(dispute.status):
            raise ConflictError(f"Dispute is {dispute.status}")

        note = DisputeNote(
            dispute_id=dispute.id, author_id=author.id, body=message.strip(), created_at=now
        )
        db.add(note)
        await db.flush()
        return note

    async def add_evidence(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        uploader: User,
        url: str,
        evidence_type: str,
        now: datetime,
        description: str | None = None,
    ) -> DisputeEvidence:
        dispute, _ = await self.get(db, dispute_id, uploader)
        if evidence_type not in EVIDENCE_TYPES:
            raise ValidationError(f"Invalid evidence type: {evidence_type}")
        if not url:
            raise ValidationError("Evidence URL is required")
        if is_terminal(dispute.status):
            raise ConflictError(f"Dispute is {dispute.status}")

        evidence = DisputeEvidence(
            dispute_id=dispute.id,
            uploaded_by=uploader.id,
            evidence_type=evidence_type,
            url=url,
            description=description,
            created_at=now,
        )
        db.add(evidence)
        await db.flush()
        return evidence

    async def start_review(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        admin: User,
        priority: str | None = None,
    ) -> Dispute:
        """Move dispute to pending (under admin review)."""
        dispute = await self._get_dispute(db, dispute_id)
        assert_dispute_transition(dispute.status, "pending")
        if priority is not None and priority not in PRIORITIES:
            raise ValidationError(f"Invalid priority: {priority}")

        values = {"status": "pending", "assigned_to": admin.id}
        if priority is not None:
            values["priority"] = priority
        if not await compare_and_set(
            db, Dispute, Dispute.id == dispute.id, "open", instance=dispute, **values
        ):
            raise InvalidTransition("dispute", dispute.status, "pending")
        return dispute

    async def resolve(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        resolver: User,
        resolution: str,
        host_share_ratio,
        now: datetime,
    ) -> Dispute:
        """Split the frozen escrow by ratio and close the dispute as resolved.

        Raises:
            ValidationError: Ratio outside [0, 1] or empty resolution text
            InvalidTransition: Dispute already terminal or escrow not frozen
        """
        try:
            ratio = Decimal(str(host_share_ratio))
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"Invalid host share ratio: {host_share_ratio!r}") from e
        if not ratio.is_finite() or ratio < 0 or ratio > 1:
            raise ValidationError("Host share ratio must be between 0 and 1")
        if not resolution or not resolution.strip():
            raise ValidationError("Resolution text is required")

        dispute = await self._get_dispute(db, dispute_id)
        prior_status = dispute.status
        assert_dispute_transition(prior_status, "resolved")
        booking = await booking_service.get(db, dispute.booking_id)

        escrow = await escrow_service.get_or_404(db, booking.id)
        host_share = round_half_up(Decimal(escrow.held_amount) * ratio)
        guest_share = escrow.held_amount - host_share

        if not await compare_and_set(
            db,
            Dispute,
            Dispute.id == dispute.id,
            ACTIVE_DISPUTE_STATUSES,
            instance=dispute,
            status="resolved",
            resolution=resolution.strip(),
            host_ratio=ratio,
            resolved_by=resolver.id,
            resolved_at=now,
        ):
            raise InvalidTransition("dispute", dispute.status, "resolved")

        await escrow_service.split(
            db, booking.id, host_share, guest_share, resolver.id, now, note=f"Dispute {dispute.id}"
        )

        if booking.status == "disputed":
            if not await booking_service.transition(
                db, booking, "disputed", "completed", completed_at=now
            ):
                raise InvalidTransition("booking", booking.status, "completed")

        await audit_service.log_status_change(
            db,
            resolver.id,
            "dispute_resolve",
            "dispute",
            dispute.id,
            prior_status,
            "resolved",
            host_share=host_share,
            guest_share=guest_share,
            ratio=str(ratio),
        )
        logger.info(
            f"Dispute {dispute.id} resolved: host {host_share}, guest {guest_share} "
            f"of {escrow.held_amount}"
        )
        await notification_service.notify_many(
            [booking.guest_id, booking.host_id],
            notification_service.DISPUTE_RESOLVED,
            {"dispute_id": str(dispute.id), "host_share": host_share, "guest_share": guest_share},
        )
        return dispute

    async def close(
        self,
        db: AsyncSession,
        dispute_id: UUID,
        user: User,
        now: datetime,
        note: str | None = None,
    ) -> Dispute:
        """Close without a fund decision; escrow returns to held.

        Allowed for admins and for the reporter (withdrawing the dispute).
        """
        dispute, booking = await self.get(db, dispute_id, user)
        if not user.is_admin and user.id != dispute.reporter_id:
            raise AuthorizationError("Only an admin or the reporter can close this dispute")
        prior_status = dispute.status
        assert_dispute_transition(prior_status, "closed")

        if not await compare_and_set(
            db,
            Dispute,
            Dispute.id == dispute.id,
            ACTIVE_DISPUTE_STATUSES,
            instance=dispute,
            status="closed",
            resolution=note,
            closed_by=user.id,
            closed_at=now,
        ):
            raise InvalidTransition("dispute", dispute.status, "closed")

        escrow = await escrow_service.get(db, booking.id)
        if escrow is not None and escrow.status == "frozen":
            await escrow_service.unfreeze(db, booking.id, now, user.id, note=f"Dispute {dispute.id} closed")

        if booking.status == "disputed":
            restore = booking.status_before_dispute or "confirmed"
            if not await booking_service.transition(
                db, booking, "disputed", restore, status_before_dispute=None
            ):
                raise InvalidTransition("booking", booking.status, restore)

        await audit_service.log_status_change(
            db, user.id, "dispute_close", "dispute", dispute.id, prior_status, "closed", note=note
        )
        logger.info(f"Dispute {dispute.id} closed by {user.id}")
        await notification_service.notify_many(
            [booking.guest_id, booking.host_id],
            notification_service.DISPUTE_CLOSED,
            {"dispute_id": str(dispute.id)},
        )
        return dispute


dispute_service = DisputeService()
