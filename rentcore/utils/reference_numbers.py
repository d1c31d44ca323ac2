"""Reference number generation for bookings, vouchers, releases and payouts."""

import random
import secrets
import string
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

_ALPHANUMERIC = string.ascii_uppercase + string.digits


async def generate_booking_number(db: AsyncSession) -> str:
    """Generate a unique booking number in format BK-XXXXXX.

    Args:
        db: Database session for uniqueness check

    Returns:
        str: Unique booking number like 'BK-A3B7K9'
    """
    from rentcore.models.booking import Booking

    while True:
        booking_number = f"BK-{''.join(random.choices(_ALPHANUMERIC, k=6))}"
        result = await db.execute(
            select(Booking.id).where(Booking.booking_number == booking_number)
        )
        if result.scalar_one_or_none() is None:
            return booking_number


async def generate_voucher_number(db: AsyncSession, now: datetime) -> str:
    """Generate a unique cash voucher number like 'NE-2026-9F1C03AB'."""
    from rentcore.models.payment import CashVoucher

    while True:
        voucher_number = f"NE-{now.year}-{secrets.token_hex(4).upper()}"
        result = await db.execute(
            select(CashVoucher.id).where(CashVoucher.voucher_number == voucher_number)
        )
        if result.scalar_one_or_none() is None:
            return voucher_number


def generate_release_reference(now: datetime) -> str:
    """Generate an escrow release reference.

    Returns:
        str: Release reference like 'REL-20260115-A3B7'
    """
    return f"REL-{now.strftime('%Y%m%d')}-{''.join(random.choices(_ALPHANUMERIC, k=4))}"


def generate_payout_reference(now: datetime) -> str:
    """Generate a payout reference number.

    Returns:
        str: Payout reference like 'PAY-20260115-K9M2'
    """
    return f"PAY-{now.strftime('%Y%m%d')}-{''.join(random.choices(_ALPHANUMERIC, k=4))}"
