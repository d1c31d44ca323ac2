"""Host payout batching.

Reads disbursed escrow entries (``released`` or ``split``) that are not yet
part of a payout, groups them by host and currency, and creates one
``HostPayout`` per group against the host's default bank account.
"""

import logging
from collections import defaultdict
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.config import settings
from rentcore.core.encryption import encrypt_sensitive, mask_account_number
from rentcore.core.exceptions import ConflictError, ValidationError
from rentcore.domain.escrow_state import DISBURSED_STATUSES
from rentcore.domain.pricing import host_portion_of_share
from rentcore.models.booking import Booking
from rentcore.models.escrow import Escrow
from rentcore.models.payment import HostPayout
from rentcore.models.user import BankAccount, User
from rentcore.services.audit_service import audit_service
from rentcore.services.escrow_service import escrow_service
from rentcore.services.notification_service import notification_service
from rentcore.utils.reference_numbers import generate_payout_reference

logger = logging.getLogger(__name__)


def host_amount(escrow: Escrow, booking: Booking) -> int:
    """What the host is owed from one disbursed escrow entry."""
    if escrow.status == "released":
        return booking.host_payout
    return host_portion_of_share(escrow.host_share or 0, booking.total_amount, booking.host_payout)


class PayoutService:
    """Service for host bank accounts and payout batches."""

    async def add_bank_account(
        self,
        db: AsyncSession,
        host: User,
        bank_name: str,
        account_holder_name: str,
        account_number: str,
        is_default: bool = True,
    ) -> BankAccount:
        digits = account_number.replace(" ", "")
        if len(digits) < 4:
            raise ValidationError("Account number is too short")

        if is_default:
            await db.execute(
                update(BankAccount)
                .where(BankAccount.user_id == host.id)
                .values(is_default=False)
                .execution_options(synchronize_session=False)
            )

        account = BankAccount(
            user_id=host.id,
            bank_name=bank_name,
            account_holder_name=account_holder_name,
            account_number_encrypted=encrypt_sensitive(digits),
            account_last4=digits[-4:],
            is_default=is_default,
        )
        db.add(account)
        await db.flush()
        logger.info(f"Bank account {mask_account_number(digits)} added for host {host.id}")
        return account

    async def list_bank_accounts(self, db: AsyncSession, host_id: UUID) -> list[BankAccount]:
        result = await db.execute(
            select(BankAccount)
            .where(BankAccount.user_id == host_id)
            .order_by(BankAccount.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def _default_account(self, db: AsyncSession, host_id: UUID) -> BankAccount | None:
        result = await db.execute(
            select(BankAccount)
            .where(BankAccount.user_id == host_id, BankAccount.is_default.is_(True))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_payouts(self, db: AsyncSession, host_id: UUID | None = None) -> list[HostPayout]:
        stmt = select(HostPayout).order_by(HostPayout.created_at.desc())
        if host_id is not None:
            stmt = stmt.where(HostPayout.host_id == host_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def run_payouts(self, db: AsyncSession, now: datetime) -> list[HostPayout]:
        """Batch unpaid disbursed escrows into host payouts."""
        result = await db.execute(
            select(Escrow, Booking)
            .join(Booking, Booking.id == Escrow.booking_id)
            .where(Escrow.status.in_(DISBURSED_STATUSES), Escrow.payout_id.is_(None))
            .order_by(Escrow.host_id, Escrow.currency)
        )

        groups: dict[tuple[UUID, str], list[tuple[Escrow, int]]] = defaultdict(list)
        for escrow, booking in result.all():
            amount = host_amount(escrow, booking)
            if amount > 0:
                groups[(escrow.host_id, escrow.currency)].append((escrow, amount))

        payouts = []
        for (host_id, currency), entries in groups.items():
            total = sum(amount for _, amount in entries)
            if total < settings.minimum_payout_amount:
                logger.info(
                    f"Payout for host {host_id} deferred: {total} {currency} below minimum"
                )
                continue

            account = await self._default_account(db, host_id)
            if account is None:
                logger.warning(f"Host {host_id} has {total} {currency} owed but no bank account")
                continue

            payout = HostPayout(
                reference=generate_payout_reference(now),
                host_id=host_id,
                bank_account_id=account.id,
                amount=total,
                currency=currency,
                status="pending",
                booking_ids=[str(escrow.booking_id) for escrow, _ in entries],
                created_at=now,
            )
            db.add(payout)
            await db.flush()

            attached = await escrow_service.attach_payout(
                db, [escrow.id for escrow, _ in entries], payout.id
            )
            if attached != len(entries):
                # Another run already claimed some of these entries
                raise ConflictError(f"Payout batch for host {host_id} changed concurrently")

            await audit_service.log_financial_action(
                db,
                user_id=None,
                action="payout_create",
                resource_type="payout",
                resource_id=payout.id,
                new_values={"amount": total, "currency": currency, "bookings": payout.booking_ids},
            )
            await notification_service.notify(
                host_id,
                notification_service.PAYOUT_SCHEDULED,
                {
                    "reference": payout.reference,
                    "amount": total,
                    "currency": currency,
                    "account": mask_account_number(account.account_last4),
                },
            )
            logger.info(f"Payout {payout.reference} created for host {host_id}: {total} {currency}")
            payouts.append(payout)

        return payouts


payout_service = PayoutService()
