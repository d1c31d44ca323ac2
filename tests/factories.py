"""Builders for users, listings and bookings used across the test suite."""

import uuid
from datetime import UTC, date, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.core.security import create_user_token
from rentcore.gateways.base import CaptureResult, PaymentHandle
from rentcore.models.booking import Booking
from rentcore.models.listing import Listing
from rentcore.models.user import User
from rentcore.services.booking_service import booking_service
from rentcore.services.payment_service import payment_service

# Fixed clock: every stay below starts a month after "now"
NOW = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)
STAY_START = date(2026, 4, 1)
STAY_END = date(2026, 4, 4)
CHECK_IN_AT = datetime(2026, 4, 1, 14, 0, tzinfo=UTC)
CHECK_OUT_AT = datetime(2026, 4, 4, 11, 0, tzinfo=UTC)
RELEASE_AT = CHECK_OUT_AT + timedelta(hours=24)

WEBHOOK_SIGNATURE = "t=1,v1=test-signature"


async def make_user(db: AsyncSession, role: str = "guest", **overrides) -> User:
    values = {
        "email": f"{role}-{uuid.uuid4().hex[:8]}@example.com",
        "first_name": "Amina",
        "last_name": role.capitalize(),
        "phone": "+213555000111",
        "role": role,
        "is_active": True,
    }
    values.update(overrides)
    user = User(**values)
    db.add(user)
    await db.commit()
    return user


async def make_listing(db: AsyncSession, host: User, **overrides) -> Listing:
    values = {
        "host_id": host.id,
        "title": "Sea view apartment",
        "category": "stay",
        "status": "active",
        "base_price": 5000,
        "cleaning_fee": 500,
        "security_deposit": 0,
        "currency": "DZD",
        "min_stay": 1,
        "max_stay": 30,
        "max_guests": 4,
        "instant_book": False,
        "cancellation_policy": "moderate",
    }
    values.update(overrides)
    listing = Listing(**values)
    db.add(listing)
    await db.commit()
    return listing


async def book(
    db: AsyncSession,
    guest: User,
    listing: Listing,
    method: str = "card",
    start: date = STAY_START,
    end: date = STAY_END,
    now: datetime = NOW,
    **kwargs,
) -> tuple[Booking, PaymentHandle]:
    return await booking_service.create(db, guest, listing.id, start, end, method, now, **kwargs)


async def pay_by_card(
    db: AsyncSession,
    handle: PaymentHandle,
    now: datetime = NOW + timedelta(minutes=5),
    event_id: str | None = None,
) -> CaptureResult:
    return await payment_service.confirm_payment(
        db, event_id or f"evt_{handle.intent_id}", handle.intent_id, now
    )


async def paid_booking(
    db: AsyncSession,
    guest: User,
    listing: Listing,
    start: date = STAY_START,
    end: date = STAY_END,
) -> Booking:
    """Card booking captured at NOW + 5 minutes; confirmed if the listing is instant-book."""
    booking, handle = await book(db, guest, listing, start=start, end=end)
    result = await pay_by_card(db, handle)
    assert result.success
    return await booking_service.get(db, booking.id)


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_user_token(str(user.id), user.role)}"}
