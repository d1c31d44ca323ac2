"""Payment capture through the card webhook and admin voucher validation."""

from datetime import timedelta
from unittest.mock import ANY

import pytest
from sqlalchemy import func, select

from rentcore.core.exceptions import ValidationError
from rentcore.domain.payment_state import card_sources, voucher_sources
from rentcore.models.admin import AuditLog
from rentcore.models.escrow import Escrow
from rentcore.models.payment import ProcessedPaymentEvent
from rentcore.services.booking_service import booking_service
from rentcore.services.escrow_service import escrow_service
from rentcore.services.gateway_service import gateway_service
from rentcore.services.payment_service import payment_service
from tests.factories import NOW, RELEASE_AT, book, pay_by_card


async def _escrow_count(db) -> int:
    return (await db.execute(select(func.count(Escrow.id)))).scalar_one()


# ============ Card ============


def test_payment_vehicle_transitions() -> None:
    assert card_sources("succeeded") == ("requires_payment", "failed")
    assert "succeeded" in card_sources("refund_required")
    assert "refund_required" not in card_sources("succeeded")
    assert voucher_sources("validated") == ("pending",)
    assert voucher_sources("pending") == ()


async def test_card_capture_on_request_listing_awaits_host(db, guest, listing, notifications) -> None:
    booking, handle = await book(db, guest, listing)
    captured_at = NOW + timedelta(minutes=5)

    result = await pay_by_card(db, handle, now=captured_at)

    assert result.success
    assert not result.duplicate
    assert result.booking_status == "paid"
    booking = await booking_service.get(db, booking.id)
    assert booking.status == "paid"
    assert booking.payment_status == "succeeded"
    assert booking.paid_at == captured_at
    assert booking.confirmed_at is None

    card = await gateway_service.card.get_handle(db, booking.id)
    assert card.status == "succeeded"

    escrow = await escrow_service.get(db, booking.id)
    assert escrow.status == "held"
    assert escrow.held_amount == 16740
    assert escrow.payment_method == "card"
    assert escrow.release_eligible_at == RELEASE_AT
    events = await escrow_service.get_events(db, escrow.id)
    assert [event.action for event in events] == ["captured"]

    notifications.notify.assert_any_await(guest.id, "payment_received", ANY)
    notifications.notify.assert_any_await(listing.host_id, "booking_paid", ANY)


async def test_card_capture_on_instant_listing_confirms(db, guest, instant_listing) -> None:
    booking, handle = await book(db, guest, instant_listing)

    result = await pay_by_card(db, handle)

    assert result.booking_status == "confirmed"
    booking = await booking_service.get(db, booking.id)
    assert booking.confirmed_at == NOW + timedelta(minutes=5)


async def test_replayed_event_is_a_no_op(db, guest, instant_listing) -> None:
    booking, handle = await book(db, guest, instant_listing)

    first = await pay_by_card(db, handle, event_id="evt_1")
    replay = await pay_by_card(db, handle, event_id="evt_1", now=NOW + timedelta(minutes=6))

    assert first.success and not first.duplicate
    assert replay.success and replay.duplicate
    assert await _escrow_count(db) == 1
    events = (await db.execute(select(func.count(ProcessedPaymentEvent.id)))).scalar_one()
    assert events == 1


async def test_second_capture_for_confirmed_booking_changes_nothing(db, guest, instant_listing) -> None:
    booking, handle = await book(db, guest, instant_listing)
    await pay_by_card(db, handle, event_id="evt_1")

    result = await pay_by_card(db, handle, event_id="evt_2", now=NOW + timedelta(minutes=7))

    assert result.success
    assert result.duplicate
    booking = await booking_service.get(db, booking.id)
    assert booking.status == "confirmed"
    assert booking.paid_at == NOW + timedelta(minutes=5)
    assert await _escrow_count(db) == 1


async def test_capture_by_booking_number(db, guest, listing) -> None:
    booking, _ = await book(db, guest, listing)

    result = await payment_service.confirm_payment(
        db, "evt_by_number", booking.booking_number, NOW + timedelta(minutes=5)
    )

    assert result.success
    assert result.booking_id == booking.id


async def test_unknown_booking_acknowledged(db) -> None:
    result = await payment_service.confirm_payment(db, "evt_x", "pi_missing", NOW)

    assert result.success
    assert result.booking_id is None


async def test_capture_after_expiry_requires_refund(db, guest, listing) -> None:
    booking, handle = await book(db, guest, listing)
    await booking_service.expire_if_overdue(db, booking, NOW + timedelta(minutes=31))

    result = await pay_by_card(db, handle, now=NOW + timedelta(minutes=40))

    assert not result.success
    assert result.booking_status == "expired"
    card = await gateway_service.card.get_handle(db, booking.id)
    assert card.status == "refund_required"
    assert await _escrow_count(db) == 0


async def test_capture_after_window_before_sweep_succeeds(db, guest, listing) -> None:
    booking, handle = await book(db, guest, listing)

    result = await pay_by_card(db, handle, now=NOW + timedelta(minutes=45))

    assert result.success
    booking = await booking_service.get(db, booking.id)
    assert booking.status == "paid"
    assert not await booking_service.expire_if_overdue(db, booking, NOW + timedelta(hours=1))


async def test_declined_attempt_can_be_retried(db, guest, listing) -> None:
    booking, handle = await book(db, guest, listing)

    assert await payment_service.record_card_failure(db, "evt_fail", handle.intent_id, "Insufficient funds")
    card = await gateway_service.card.get_handle(db, booking.id)
    assert card.status == "failed"
    assert (await booking_service.get(db, booking.id)).status == "pending_payment"

    result = await pay_by_card(db, handle, event_id="evt_ok")
    assert result.success
    assert result.booking_status == "paid"


async def test_card_event_for_voucher_booking_rejected(db, guest, listing) -> None:
    booking, _ = await book(db, guest, listing, method="cash_voucher")

    result = await payment_service.confirm_payment(db, "evt_v", booking.booking_number, NOW)

    assert not result.success
    assert await _escrow_count(db) == 0


# ============ Cash voucher ============


async def test_voucher_validation_captures_booking(db, guest, admin, listing) -> None:
    booking, handle = await book(db, guest, listing, method="cash_voucher")
    validated_at = NOW + timedelta(hours=2)

    result = await payment_service.validate_voucher(
        db, admin, validated_at, "AG-ORAN-01", "TX-5521", voucher_id=handle.voucher_id, notes="Paid cash"
    )

    assert result.captured
    assert not result.expired
    assert result.booking.status == "paid"
    assert result.booking.payment_status == "succeeded"
    assert result.voucher.status == "validated"
    assert result.voucher.agency_code == "AG-ORAN-01"
    assert result.voucher.agency_transaction_id == "TX-5521"
    assert result.voucher.validated_by == admin.id
    assert result.voucher.validated_at == validated_at

    escrow = await escrow_service.get(db, booking.id)
    assert escrow.held_amount == 16740
    assert escrow.payment_method == "cash_voucher"

    audit = (
        await db.execute(select(AuditLog).where(AuditLog.action == "voucher_validate"))
    ).scalar_one()
    assert audit.user_id == admin.id
    assert audit.new_values["transaction_id"] == "TX-5521"


async def test_voucher_validation_by_booking_on_instant_listing(db, guest, admin, instant_listing) -> None:
    booking, _ = await book(db, guest, instant_listing, method="cash_voucher")

    result = await payment_service.validate_voucher(
        db, admin, NOW + timedelta(hours=1), "AG-1", "TX-1", booking_id=booking.id
    )

    assert result.booking.status == "confirmed"


async def test_validating_twice_returns_existing_state(db, guest, admin, listing) -> None:
    _, handle = await book(db, guest, listing, method="cash_voucher")
    await payment_service.validate_voucher(
        db, admin, NOW + timedelta(hours=1), "AG-1", "TX-1", voucher_id=handle.voucher_id
    )

    again = await payment_service.validate_voucher(
        db, admin, NOW + timedelta(hours=2), "AG-1", "TX-2", voucher_id=handle.voucher_id
    )

    assert again.already_validated
    assert not again.captured
    assert again.voucher.agency_transaction_id == "TX-1"
    assert await _escrow_count(db) == 1


async def test_expired_voucher_expires_booking_without_escrow(db, guest, admin, listing) -> None:
    booking, handle = await book(db, guest, listing, method="cash_voucher")

    result = await payment_service.validate_voucher(
        db, admin, NOW + timedelta(hours=49), "AG-1", "TX-1", voucher_id=handle.voucher_id
    )

    assert result.expired
    assert not result.captured
    assert result.voucher.status == "expired"
    assert result.booking.status == "expired"
    assert await escrow_service.get(db, booking.id) is None


async def test_voucher_validation_requires_receipt(db, guest, admin, listing) -> None:
    _, handle = await book(db, guest, listing, method="cash_voucher")

    with pytest.raises(ValidationError):
        await payment_service.validate_voucher(db, admin, NOW, "", "TX-1", voucher_id=handle.voucher_id)
    with pytest.raises(ValidationError):
        await payment_service.validate_voucher(db, admin, NOW, "AG-1", "TX-1")


async def test_voucher_expiry_check_on_read(db, guest, listing) -> None:
    booking, handle = await book(db, guest, listing, method="cash_voucher")
    voucher = await payment_service.get_voucher(db, voucher_id=handle.voucher_id)

    assert not await payment_service.check_voucher_expiry(db, voucher, NOW + timedelta(hours=47))
    assert await payment_service.check_voucher_expiry(db, voucher, NOW + timedelta(hours=48, minutes=1))

    assert voucher.status == "expired"
    assert (await booking_service.get(db, booking.id)).status == "expired"


# ============ Expiry ============


async def test_card_handle_expiry(db, guest, listing) -> None:
    booking, handle = await book(db, guest, listing)
    adapter = gateway_service.card

    assert not adapter.is_expired(handle, NOW + timedelta(minutes=30))
    assert adapter.is_expired(handle, NOW + timedelta(minutes=31))

    await payment_service.record_card_failure(db, "evt_declined", handle.intent_id, "Declined")
    failed = await adapter.get_handle(db, booking.id)
    assert adapter.is_expired(failed, NOW + timedelta(minutes=31))

    await pay_by_card(db, handle, now=NOW + timedelta(minutes=10))
    captured = await adapter.get_handle(db, booking.id)
    assert captured.status == "succeeded"
    assert not adapter.is_expired(captured, NOW + timedelta(days=1))


async def test_voucher_handle_expiry(db, guest, listing) -> None:
    booking, handle = await book(db, guest, listing, method="cash_voucher")
    adapter = gateway_service.cash_voucher

    assert not adapter.is_expired(handle, NOW + timedelta(hours=48))
    assert adapter.is_expired(handle, NOW + timedelta(hours=48, seconds=1))

    await adapter.expire(db, booking.id)
    expired = await adapter.get_handle(db, booking.id)
    assert expired.status == "expired"
    assert adapter.is_expired(expired, NOW)
