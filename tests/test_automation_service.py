"""Periodic sweeps: expiry, activation, completion, escrow release and host deadlines."""

from datetime import timedelta
from unittest.mock import ANY

from rentcore.services.automation_service import automation_service
from rentcore.services.booking_service import booking_service
from rentcore.services.dispute_service import dispute_service
from rentcore.services.escrow_service import escrow_service
from tests.factories import (
    CHECK_IN_AT,
    CHECK_OUT_AT,
    NOW,
    RELEASE_AT,
    book,
    paid_booking,
)


async def test_expires_only_overdue_payments(db, guest, listing, card_processor, notifications) -> None:
    card_booking, handle = await book(db, guest, listing)
    voucher_booking, _ = await book(
        db,
        guest,
        listing,
        method="cash_voucher",
        start=CHECK_IN_AT.date() + timedelta(days=10),
        end=CHECK_IN_AT.date() + timedelta(days=12),
    )

    assert await automation_service.expire_overdue_payments(db, NOW + timedelta(minutes=29)) == 0
    assert await automation_service.expire_overdue_payments(db, NOW + timedelta(minutes=31)) == 1

    assert (await booking_service.get(db, card_booking.id)).status == "expired"
    assert (await booking_service.get(db, voucher_booking.id)).status == "pending_payment"
    assert card_processor.cancelled == [handle.intent_id]
    notifications.notify.assert_any_await(guest.id, "booking_expired", ANY)

    assert await automation_service.expire_overdue_payments(db, NOW + timedelta(hours=49)) == 1
    assert (await booking_service.get(db, voucher_booking.id)).status == "expired"


async def test_activation_at_check_in(db, confirmed) -> None:
    assert await automation_service.activate_due(db, CHECK_IN_AT - timedelta(minutes=1)) == 0
    assert await automation_service.activate_due(db, CHECK_IN_AT) == 1

    booking = await booking_service.get(db, confirmed.id)
    assert booking.status == "active"
    assert booking.activated_at == CHECK_IN_AT


async def test_completion_waits_for_grace_period(db, confirmed, notifications) -> None:
    await automation_service.activate_due(db, CHECK_IN_AT)

    early = CHECK_OUT_AT + timedelta(hours=5, minutes=59)
    assert await automation_service.complete_due(db, early) == 0

    done_at = CHECK_OUT_AT + timedelta(hours=6)
    assert await automation_service.complete_due(db, done_at) == 1
    booking = await booking_service.get(db, confirmed.id)
    assert booking.status == "completed"
    assert booking.auto_completed is True
    assert booking.completed_at == done_at
    notifications.notify.assert_any_await(booking.guest_id, "booking_completed", ANY)


async def test_release_after_eligibility(db, confirmed) -> None:
    assert await automation_service.release_eligible_escrows(db, RELEASE_AT - timedelta(seconds=1)) == 0
    assert await automation_service.release_eligible_escrows(db, RELEASE_AT) == 1

    escrow = await escrow_service.get(db, confirmed.id)
    assert escrow.status == "released"
    assert escrow.release_type == "automatic"
    assert await automation_service.release_eligible_escrows(db, RELEASE_AT + timedelta(hours=1)) == 0


async def test_disputed_stay_is_neither_completed_nor_released(db, confirmed, guest) -> None:
    await automation_service.activate_due(db, CHECK_IN_AT)
    await dispute_service.open(
        db, confirmed.id, guest, "no_access", "Key box was empty", CHECK_IN_AT + timedelta(hours=1)
    )

    result = await automation_service.run_all(db, RELEASE_AT + timedelta(days=1))
    assert result["completed"] == 0
    assert result["released"] == 0

    assert (await booking_service.get(db, confirmed.id)).status == "disputed"
    assert (await escrow_service.get(db, confirmed.id)).status == "frozen"


async def test_unanswered_request_is_cancelled_and_refunded(
    db, guest, listing, card_processor, notifications
) -> None:
    booking = await paid_booking(db, guest, listing)
    assert booking.status == "paid"
    deadline = booking.paid_at + timedelta(hours=24)

    assert await automation_service.cancel_unanswered_requests(db, deadline - timedelta(seconds=1)) == 0
    assert await automation_service.cancel_unanswered_requests(db, deadline) == 1

    booking = await booking_service.get(db, booking.id)
    assert booking.status == "cancelled_by_admin"
    assert booking.refund_amount == 16740
    assert booking.payment_status == "refunded"
    assert card_processor.refunds == [(f"pi_{booking.booking_number}", 16740)]

    escrow = await escrow_service.get(db, booking.id)
    assert (escrow.host_share, escrow.guest_share) == (0, 16740)
    notifications.notify.assert_any_await(booking.host_id, "booking_cancelled", ANY)


async def test_run_all_walks_the_whole_lifecycle(db, confirmed) -> None:
    assert await automation_service.run_all(db, NOW) == {
        "expired": 0,
        "host_deadline_cancelled": 0,
        "activated": 0,
        "completed": 0,
        "released": 0,
    }

    result = await automation_service.run_all(db, RELEASE_AT)
    assert result["activated"] == 1
    assert result["completed"] == 1
    assert result["released"] == 1

    booking = await booking_service.get(db, confirmed.id)
    assert booking.status == "completed"
    assert (await escrow_service.get(db, booking.id)).status == "released"
