"""Booking lifecycle: creation, availability, expiry, host actions, cancellation."""

import re
from datetime import UTC, date, datetime, timedelta
from unittest.mock import ANY, AsyncMock

import pytest
from sqlalchemy import func, select

from rentcore.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DatesNotAvailable,
    EscrowFrozen,
    InvalidDateRange,
    InvalidTransition,
    ListingNotAvailable,
    PaymentError,
    StayLengthError,
    ValidationError,
    VoucherIssuanceError,
)
from rentcore.core.immutability import ImmutabilityViolationError
from rentcore.domain.booking_state import assert_booking_transition
from rentcore.gateways.base import CardHandle, VoucherHandle
from rentcore.gateways.cash_voucher import VoucherIssuer
from rentcore.models.admin import AuditLog
from rentcore.models.booking import Booking
from rentcore.models.dispute import Dispute
from rentcore.models.listing import CalendarBlock
from rentcore.services.booking_service import booking_service
from rentcore.services.escrow_service import escrow_service
from rentcore.services.gateway_service import gateway_service
from tests.factories import (
    CHECK_IN_AT,
    CHECK_OUT_AT,
    NOW,
    STAY_END,
    STAY_START,
    book,
    make_listing,
    make_user,
    paid_booking,
)


async def _count_bookings(db) -> int:
    return (await db.execute(select(func.count(Booking.id)))).scalar_one()


# ============ Creation ============


async def test_create_card_booking_snapshots_pricing(db, guest, listing, card_processor, notifications) -> None:
    booking, handle = await book(db, guest, listing)

    assert booking.status == "pending_payment"
    assert booking.payment_status == "pending"
    assert re.fullmatch(r"BK-[A-Z0-9]{6}", booking.booking_number)
    assert booking.nights == 3
    assert booking.subtotal == 15000
    assert booking.guest_service_fee == 1240
    assert booking.host_commission == 465
    assert booking.total_amount == 16740
    assert booking.host_payout == 15035
    assert booking.platform_revenue == 1705
    assert booking.commission_category == "stay"
    assert booking.check_in_at == CHECK_IN_AT
    assert booking.check_out_at == CHECK_OUT_AT
    assert booking.payment_expires_at == NOW + timedelta(minutes=30)

    assert isinstance(handle, CardHandle)
    assert handle.intent_id == f"pi_{booking.booking_number}"
    assert handle.client_secret == f"pi_{booking.booking_number}_secret"
    assert handle.amount == 16740
    assert card_processor.created == [handle.intent_id]
    notifications.notify.assert_any_await(listing.host_id, "booking_requested", ANY)


async def test_create_voucher_booking_issues_voucher(db, guest, listing, notifications) -> None:
    booking, handle = await book(db, guest, listing, method="cash_voucher")

    assert isinstance(handle, VoucherHandle)
    assert re.fullmatch(r"NE-2026-[0-9A-F]{8}", handle.voucher_number)
    assert handle.amount == booking.total_amount
    assert handle.expires_at == NOW + timedelta(hours=48)
    assert booking.payment_expires_at == handle.expires_at
    assert set(handle.instructions) == {"en", "fr", "ar"}
    assert handle.voucher_number in handle.instructions["en"]

    notifications.send_email.assert_awaited_once()
    template, recipient, payload = notifications.send_email.await_args.args
    assert template == "voucher_issued"
    assert recipient == guest.email
    assert payload["voucher_number"] == handle.voucher_number


async def test_voucher_contact_overrides_profile(db, listing) -> None:
    guest = await make_user(db, "guest", phone=None)

    with pytest.raises(ValidationError):
        await book(db, guest, listing, method="cash_voucher")

    _, handle = await book(
        db,
        guest,
        listing,
        method="cash_voucher",
        contact={"full_name": "Yacine Benali", "phone": "+213661000222"},
    )
    voucher = await gateway_service.cash_voucher.get_voucher(db, booking_id=handle.booking_id)
    assert voucher.guest_full_name == "Yacine Benali"
    assert voucher.guest_phone == "+213661000222"


async def test_voucher_not_offered_for_other_currencies(db, guest, host) -> None:
    listing = await make_listing(db, host, currency="EUR", base_price=9000)

    with pytest.raises(ValidationError):
        await book(db, guest, listing, method="cash_voucher")


async def test_listing_check_in_hours_used(db, guest, host) -> None:
    listing = await make_listing(db, host, check_in_hour=16, check_out_hour=10)

    booking, _ = await book(db, guest, listing)

    assert booking.check_in_at == datetime(2026, 4, 1, 16, 0, tzinfo=UTC)
    assert booking.check_out_at == datetime(2026, 4, 4, 10, 0, tzinfo=UTC)


# ============ Validation and availability ============


async def test_overlapping_dates_rejected(db, guest, listing) -> None:
    await book(db, guest, listing)
    other = await make_user(db, "guest")

    with pytest.raises(DatesNotAvailable):
        await book(db, other, listing, start=date(2026, 4, 3), end=date(2026, 4, 6))

    # Check-out day is free for the next arrival
    booking, _ = await book(db, other, listing, start=STAY_END, end=date(2026, 4, 6))
    assert booking.status == "pending_payment"


async def test_calendar_block_rejects_dates(db, guest, listing) -> None:
    db.add(CalendarBlock(listing_id=listing.id, start_date=date(2026, 4, 2), end_date=date(2026, 4, 3)))
    await db.flush()

    assert not await booking_service.is_available(db, listing.id, STAY_START, STAY_END)
    with pytest.raises(DatesNotAvailable):
        await book(db, guest, listing)


async def test_request_validation(db, guest, host, listing) -> None:
    with pytest.raises(InvalidDateRange):
        await book(db, guest, listing, start=STAY_END, end=STAY_START)
    with pytest.raises(InvalidDateRange):
        await book(db, guest, listing, start=date(2026, 2, 20), end=date(2026, 2, 23))
    with pytest.raises(ValidationError):
        await book(db, host, listing)
    with pytest.raises(ValidationError):
        await book(db, guest, listing, adults=3, children=2)

    picky = await make_listing(db, host, min_stay=5)
    with pytest.raises(StayLengthError):
        await book(db, guest, picky)

    closed = await make_listing(db, host, status="inactive")
    with pytest.raises(ListingNotAvailable):
        await book(db, guest, closed)

    assert await _count_bookings(db) == 0


async def test_failed_payment_vehicle_removes_booking(db, guest, listing, card_processor) -> None:
    card_processor.fail_create = True

    with pytest.raises(PaymentError):
        await book(db, guest, listing)

    assert await _count_bookings(db) == 0
    assert await booking_service.is_available(db, listing.id, STAY_START, STAY_END)


async def test_failed_voucher_issuance_removes_booking(db, guest, listing, monkeypatch) -> None:
    register = AsyncMock(side_effect=VoucherIssuanceError("agency timeout"))
    monkeypatch.setattr(VoucherIssuer, "register", register)

    with pytest.raises(VoucherIssuanceError):
        await book(db, guest, listing, method="cash_voucher")

    register.assert_awaited_once()
    assert await _count_bookings(db) == 0
    assert await booking_service.is_available(db, listing.id, STAY_START, STAY_END)


# ============ Immutability ============


async def test_pricing_snapshot_cannot_change(db, guest, listing) -> None:
    booking, _ = await book(db, guest, listing)

    booking.total_amount = 1
    with pytest.raises(ImmutabilityViolationError):
        await db.flush()


async def test_paid_booking_cannot_be_deleted(db, guest, listing) -> None:
    booking = await paid_booking(db, guest, listing)

    await db.delete(booking)
    with pytest.raises(ImmutabilityViolationError):
        await db.flush()


# ============ Transitions ============


def test_state_machine_rejects_illegal_moves() -> None:
    with pytest.raises(InvalidTransition):
        assert_booking_transition("completed", "active")
    with pytest.raises(InvalidTransition):
        assert_booking_transition("pending_payment", "active")
    assert_booking_transition("paid", "confirmed")


async def test_transition_is_compare_and_set(db, guest, listing) -> None:
    booking, _ = await book(db, guest, listing)

    assert not await booking_service.transition(db, booking, "paid", "confirmed")
    with pytest.raises(InvalidTransition):
        await booking_service.transition(db, booking, "pending_payment", "active")
    assert booking.status == "pending_payment"


async def test_unpaid_card_booking_expires(db, guest, listing, card_processor, notifications) -> None:
    booking, handle = await book(db, guest, listing)

    assert not await booking_service.expire_if_overdue(db, booking, NOW + timedelta(minutes=29))
    assert await booking_service.expire_if_overdue(db, booking, NOW + timedelta(minutes=31))

    assert booking.status == "expired"
    assert booking.payment_status == "canceled"
    assert booking.expired_at == NOW + timedelta(minutes=31)
    card = await gateway_service.card.get_handle(db, booking.id)
    assert card.status == "canceled"
    assert card_processor.cancelled == [handle.intent_id]
    notifications.notify.assert_any_await(guest.id, "booking_expired", ANY)

    # Expired bookings free the calendar
    other = await make_user(db, "guest")
    again, _ = await book(db, other, listing, now=NOW + timedelta(minutes=32))
    assert again.status == "pending_payment"


async def test_unpaid_voucher_booking_expires(db, guest, listing) -> None:
    booking, _ = await book(db, guest, listing, method="cash_voucher")

    assert not await booking_service.expire_if_overdue(db, booking, NOW + timedelta(hours=47))
    assert await booking_service.expire_if_overdue(db, booking, NOW + timedelta(hours=49))

    voucher = await gateway_service.cash_voucher.get_voucher(db, booking_id=booking.id)
    assert voucher.status == "expired"
    assert await escrow_service.get(db, booking.id) is None


async def test_host_accepts_paid_request(db, guest, host, listing, notifications) -> None:
    booking = await paid_booking(db, guest, listing)
    assert booking.status == "paid"

    stranger = await make_user(db, "host")
    with pytest.raises(AuthorizationError):
        await booking_service.accept(db, booking.id, stranger, NOW + timedelta(hours=1))

    booking = await booking_service.accept(db, booking.id, host, NOW + timedelta(hours=1))
    assert booking.status == "confirmed"
    assert booking.confirmed_at == NOW + timedelta(hours=1)
    notifications.notify.assert_any_await(guest.id, "booking_confirmed", ANY)

    with pytest.raises(InvalidTransition):
        await booking_service.accept(db, booking.id, host, NOW + timedelta(hours=2))


async def test_host_rejection_refunds_in_full(db, guest, host, listing, card_processor) -> None:
    booking = await paid_booking(db, guest, listing)

    booking = await booking_service.reject(db, booking.id, host, NOW + timedelta(hours=1), "Dates blocked")

    assert booking.status == "cancelled_by_host"
    assert booking.refund_amount == 16740
    assert booking.payment_status == "refunded"
    assert booking.cancellation_reason == "Dates blocked"
    escrow = await escrow_service.get(db, booking.id)
    assert escrow.status == "split"
    assert escrow.guest_share == 16740
    assert escrow.host_share == 0
    assert card_processor.refunds == [(f"pi_{booking.booking_number}", 16740)]


async def test_reject_only_applies_to_paid_requests(db, guest, host, instant_listing) -> None:
    booking = await paid_booking(db, guest, instant_listing)

    with pytest.raises(InvalidTransition):
        await booking_service.reject(db, booking.id, host, NOW + timedelta(hours=1))


# ============ Cancellation ============


async def test_guest_cancels_pending_voucher_booking(db, guest, listing) -> None:
    booking, _ = await book(db, guest, listing, method="cash_voucher")

    booking = await booking_service.cancel(db, booking.id, guest, NOW + timedelta(hours=1), "Changed plans")

    assert booking.status == "cancelled_by_guest"
    assert booking.payment_status == "canceled"
    assert booking.refund_amount == 0
    assert booking.cancelled_by_id == guest.id
    voucher = await gateway_service.cash_voucher.get_voucher(db, booking_id=booking.id)
    assert voucher.status == "cancelled"


async def test_guest_cancellation_after_grace_keeps_fee(db, guest, instant_listing, card_processor) -> None:
    booking = await paid_booking(db, guest, instant_listing)
    assert booking.status == "confirmed"

    booking = await booking_service.cancel(db, booking.id, guest, NOW + timedelta(days=3))

    assert booking.status == "cancelled_by_guest"
    assert booking.refund_amount == 15500
    assert booking.payment_status == "partially_refunded"
    escrow = await escrow_service.get(db, booking.id)
    assert escrow.status == "split"
    assert escrow.guest_share == 15500
    assert escrow.host_share == 1240
    assert card_processor.refunds == [(f"pi_{booking.booking_number}", 15500)]

    audit = (
        await db.execute(select(AuditLog).where(AuditLog.action == "booking_cancel"))
    ).scalar_one()
    assert audit.new_values["status"] == "cancelled_by_guest"
    assert audit.new_values["refund_amount"] == 15500


async def test_guest_cancellation_in_grace_period(db, guest, instant_listing) -> None:
    booking = await paid_booking(db, guest, instant_listing)

    booking = await booking_service.cancel(db, booking.id, guest, NOW + timedelta(hours=1))

    assert booking.refund_amount == 16740
    assert booking.payment_status == "refunded"


async def test_admin_cancel_splits_manually_frozen_escrow(db, confirmed, admin, card_processor) -> None:
    await escrow_service.freeze(db, confirmed.id, "manual review", NOW + timedelta(hours=1), admin.id)

    booking = await booking_service.cancel(db, confirmed.id, admin, NOW + timedelta(days=3))

    assert booking.status == "cancelled_by_admin"
    assert booking.refund_amount == 16740
    assert booking.payment_status == "refunded"
    escrow = await escrow_service.get(db, booking.id)
    assert escrow.status == "split"
    assert (escrow.host_share, escrow.guest_share) == (0, 16740)
    actions = [e.action for e in await escrow_service.get_events(db, escrow.id)]
    assert actions == ["captured", "frozen", "split"]
    assert card_processor.refunds == [(f"pi_{booking.booking_number}", 16740)]


async def test_cancel_blocked_while_dispute_holds_escrow(db, confirmed, guest, admin) -> None:
    await escrow_service.freeze(db, confirmed.id, "dispute", NOW + timedelta(hours=1))
    db.add(
        Dispute(
            booking_id=confirmed.id,
            reporter_id=guest.id,
            reporter_role="guest",
            reason="misleading_listing",
            description="Photos do not match",
            status="open",
            created_at=NOW + timedelta(hours=1),
        )
    )
    await db.flush()

    with pytest.raises(EscrowFrozen):
        await booking_service.cancel(db, confirmed.id, admin, NOW + timedelta(days=3))

    booking = await booking_service.get(db, confirmed.id)
    assert booking.status == "confirmed"
    assert booking.refund_amount == 0
    assert (await escrow_service.get(db, confirmed.id)).status == "frozen"


async def test_cancel_after_disbursement_rejected(db, confirmed, guest, admin) -> None:
    await escrow_service.manual_release(db, confirmed.id, admin.id, NOW + timedelta(hours=1))

    with pytest.raises(ConflictError):
        await booking_service.cancel(db, confirmed.id, guest, NOW + timedelta(days=3))

    assert (await booking_service.get(db, confirmed.id)).status == "confirmed"


async def test_cancellation_rules(db, guest, host, instant_listing) -> None:
    booking = await paid_booking(db, guest, instant_listing)

    outsider = await make_user(db, "guest")
    with pytest.raises(AuthorizationError):
        await booking_service.cancel(db, booking.id, outsider, NOW + timedelta(days=1))

    assert await booking_service.transition(db, booking, "confirmed", "active", activated_at=CHECK_IN_AT)
    with pytest.raises(InvalidTransition):
        await booking_service.cancel(db, booking.id, guest, CHECK_IN_AT + timedelta(hours=1))


async def test_host_completes_active_stay(db, guest, host, instant_listing) -> None:
    booking = await paid_booking(db, guest, instant_listing)

    with pytest.raises(InvalidTransition):
        await booking_service.complete(db, booking.id, host, CHECK_IN_AT)

    await booking_service.transition(db, booking, "confirmed", "active", activated_at=CHECK_IN_AT)
    with pytest.raises(AuthorizationError):
        await booking_service.complete(db, booking.id, guest, CHECK_OUT_AT)

    booking = await booking_service.complete(db, booking.id, host, CHECK_OUT_AT)
    assert booking.status == "completed"
    assert booking.completed_at == CHECK_OUT_AT
    assert not booking.auto_completed


# ============ Lookups ============


async def test_list_for_user(db, guest, host, admin, listing) -> None:
    booking, _ = await book(db, guest, listing)
    stranger = await make_user(db, "guest")

    assert [b.id for b in await booking_service.list_for_user(db, guest)] == [booking.id]
    assert [b.id for b in await booking_service.list_for_user(db, host)] == [booking.id]
    assert [b.id for b in await booking_service.list_for_user(db, admin)] == [booking.id]
    assert await booking_service.list_for_user(db, stranger) == []
    assert await booking_service.list_for_user(db, guest, status="confirmed") == []


async def test_find_by_reference(db, guest, listing) -> None:
    booking, _ = await book(db, guest, listing)

    assert (await booking_service.find_by_ref(db, booking.booking_number)).id == booking.id
    assert (await booking_service.find_by_ref(db, str(booking.id))).id == booking.id
    assert await booking_service.find_by_ref(db, "BK-NOPE00") is None
