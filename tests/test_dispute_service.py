"""Dispute lifecycle and its effect on booking status and escrow."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import ANY

import pytest
from sqlalchemy import func, select

from rentcore.config import settings
from rentcore.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidTransition,
    ValidationError,
)
from rentcore.models.admin import AuditLog
from rentcore.models.dispute import Dispute
from rentcore.services.automation_service import automation_service
from rentcore.services.booking_service import booking_service
from rentcore.services.dispute_service import dispute_service
from rentcore.services.escrow_service import escrow_service
from tests.factories import CHECK_IN_AT, CHECK_OUT_AT, NOW, book, make_user

LATER = NOW + timedelta(days=2)


async def _open(db, booking, reporter, reason="misleading_listing"):
    return await dispute_service.open(
        db, booking.id, reporter, reason, "Photos do not match the flat", LATER
    )


async def test_open_freezes_escrow_and_marks_booking_disputed(
    db, confirmed_16240, guest, notifications
) -> None:
    dispute = await _open(db, confirmed_16240, guest)

    assert dispute.status == "open"
    assert dispute.reporter_role == "guest"
    assert dispute.priority == "normal"

    booking = await booking_service.get(db, confirmed_16240.id)
    assert booking.status == "disputed"
    assert booking.status_before_dispute == "confirmed"

    escrow = await escrow_service.get(db, booking.id)
    assert escrow.status == "frozen"
    assert escrow.freeze_reason == "dispute"

    notifications.notify.assert_any_await(booking.host_id, "dispute_opened", ANY)
    audit = (await db.execute(select(AuditLog).where(AuditLog.action == "dispute_open"))).scalar_one()
    assert audit.resource_id == dispute.id


async def test_large_amount_gets_high_priority(db, confirmed_16240, host, monkeypatch) -> None:
    monkeypatch.setattr(settings, "high_priority_dispute_amount", 10_000)
    dispute = await _open(db, confirmed_16240, host, reason="property_damage")
    assert dispute.priority == "high"
    assert dispute.reporter_role == "host"


async def test_open_validation(db, confirmed, guest) -> None:
    outsider = await make_user(db, "guest")
    with pytest.raises(AuthorizationError):
        await _open(db, confirmed, outsider)
    with pytest.raises(ValidationError):
        await _open(db, confirmed, guest, reason="bad_vibes")
    with pytest.raises(ValidationError):
        await dispute_service.open(db, confirmed.id, guest, "other", "   ", LATER)

    await _open(db, confirmed, guest)
    with pytest.raises(ConflictError):
        await _open(db, confirmed, guest)


async def test_unpaid_booking_cannot_be_disputed(db, guest, listing) -> None:
    booking, _ = await book(db, guest, listing)
    with pytest.raises(InvalidTransition):
        await _open(db, booking, guest)


async def test_dispute_after_release_is_rejected(db, confirmed, guest, admin) -> None:
    await escrow_service.manual_release(db, confirmed.id, admin.id, NOW + timedelta(hours=1))

    with pytest.raises(ConflictError):
        await _open(db, confirmed, guest)

    count = await db.scalar(select(func.count()).select_from(Dispute))
    assert count == 0
    assert (await booking_service.get(db, confirmed.id)).status == "confirmed"


async def test_resolve_splits_by_ratio_and_completes_booking(
    db, confirmed_16240, guest, admin, notifications
) -> None:
    dispute = await _open(db, confirmed_16240, guest)
    resolved = await dispute_service.resolve(
        db, dispute.id, admin, "Partial refund for missing amenities", 0.7, LATER
    )

    assert resolved.status == "resolved"
    assert resolved.host_ratio == Decimal("0.7")
    assert resolved.resolved_by == admin.id

    escrow = await escrow_service.get(db, confirmed_16240.id)
    assert escrow.status == "split"
    assert escrow.host_share == 11368
    assert escrow.guest_share == 4872

    booking = await booking_service.get(db, confirmed_16240.id)
    assert booking.status == "completed"
    assert booking.completed_at == LATER
    notifications.notify.assert_any_await(booking.guest_id, "dispute_resolved", ANY)

    with pytest.raises(InvalidTransition):
        await dispute_service.resolve(db, dispute.id, admin, "Again", 0.5, LATER)


@pytest.mark.parametrize("ratio", [-0.1, 1.2, "half"])
async def test_resolve_rejects_bad_ratio(db, confirmed, guest, admin, ratio) -> None:
    dispute = await _open(db, confirmed, guest)
    with pytest.raises(ValidationError):
        await dispute_service.resolve(db, dispute.id, admin, "Decision", ratio, LATER)
    assert (await escrow_service.get(db, confirmed.id)).status == "frozen"


async def test_resolve_full_refund_to_guest(db, confirmed, guest, admin) -> None:
    dispute = await _open(db, confirmed, guest)
    await dispute_service.resolve(db, dispute.id, admin, "No access to the flat", 0, LATER)

    escrow = await escrow_service.get(db, confirmed.id)
    assert (escrow.host_share, escrow.guest_share) == (0, 16740)


async def test_reporter_withdraws_dispute(db, confirmed, guest, host, notifications) -> None:
    dispute = await _open(db, confirmed, guest)

    with pytest.raises(AuthorizationError):
        await dispute_service.close(db, dispute.id, host, LATER)

    closed = await dispute_service.close(db, dispute.id, guest, LATER, note="Sorted out with host")
    assert closed.status == "closed"
    assert closed.closed_by == guest.id

    booking = await booking_service.get(db, confirmed.id)
    assert booking.status == "confirmed"
    assert booking.status_before_dispute is None
    assert (await escrow_service.get(db, confirmed.id)).status == "held"
    notifications.notify.assert_any_await(booking.host_id, "dispute_closed", ANY)

    with pytest.raises(InvalidTransition):
        await dispute_service.close(db, dispute.id, guest, LATER)


async def test_close_restores_active_stay(db, confirmed, host, admin) -> None:
    assert await automation_service.activate_due(db, CHECK_IN_AT) == 1
    dispute = await dispute_service.open(
        db, confirmed.id, host, "noise_party", "Party on the first night", CHECK_IN_AT
    )
    assert (await booking_service.get(db, confirmed.id)).status_before_dispute == "active"

    await dispute_service.close(db, dispute.id, admin, CHECK_IN_AT + timedelta(hours=2))
    assert (await booking_service.get(db, confirmed.id)).status == "active"


async def test_completed_booking_dispute_only_freezes_escrow(db, confirmed, guest, host, admin) -> None:
    await automation_service.activate_due(db, CHECK_IN_AT)
    await booking_service.complete(db, confirmed.id, host, CHECK_OUT_AT)

    dispute = await _open(db, confirmed, guest, reason="amenities_missing")
    booking = await booking_service.get(db, confirmed.id)
    assert booking.status == "completed"
    assert (await escrow_service.get(db, confirmed.id)).status == "frozen"

    await dispute_service.resolve(db, dispute.id, admin, "Half back", "0.5", CHECK_OUT_AT)
    escrow = await escrow_service.get(db, confirmed.id)
    assert (escrow.host_share, escrow.guest_share) == (8370, 8370)
    assert (await booking_service.get(db, confirmed.id)).status == "completed"


async def test_review_assigns_admin_and_keeps_escrow_frozen(db, confirmed, guest, admin) -> None:
    dispute = await _open(db, confirmed, guest)

    with pytest.raises(ValidationError):
        await dispute_service.start_review(db, dispute.id, admin, priority="critical")

    reviewed = await dispute_service.start_review(db, dispute.id, admin, priority="urgent")
    assert reviewed.status == "pending"
    assert reviewed.assigned_to == admin.id
    assert reviewed.priority == "urgent"

    assert await escrow_service.release(db, confirmed.id, CHECK_OUT_AT + timedelta(days=2)) is False
    assert (await escrow_service.get(db, confirmed.id)).status == "frozen"

    with pytest.raises(InvalidTransition):
        await dispute_service.start_review(db, dispute.id, admin)

    resolved = await dispute_service.resolve(db, dispute.id, admin, "Host keeps all", 1, LATER)
    assert resolved.status == "resolved"


async def test_notes_and_evidence(db, confirmed, guest, host, admin) -> None:
    dispute = await _open(db, confirmed, guest)

    await dispute_service.add_note(db, dispute.id, host, "The flat was cleaned that morning", LATER)
    await dispute_service.add_evidence(
        db, dispute.id, guest, "https://cdn.example.com/e/1.jpg", "image", LATER, "Kitchen"
    )

    notes = await dispute_service.get_notes(db, dispute.id)
    assert [note.author_id for note in notes] == [host.id]
    evidence = await dispute_service.get_evidence(db, dispute.id)
    assert evidence[0].evidence_type == "image"

    with pytest.raises(ValidationError):
        await dispute_service.add_evidence(db, dispute.id, guest, "https://x", "video", LATER)
    with pytest.raises(ValidationError):
        await dispute_service.add_note(db, dispute.id, guest, "  ", LATER)

    outsider = await make_user(db, "guest")
    with pytest.raises(AuthorizationError):
        await dispute_service.add_note(db, dispute.id, outsider, "Hello", LATER)

    await dispute_service.close(db, dispute.id, admin, LATER)
    with pytest.raises(ConflictError):
        await dispute_service.add_note(db, dispute.id, guest, "One more thing", LATER)
    with pytest.raises(ConflictError):
        await dispute_service.add_evidence(db, dispute.id, guest, "https://x", "document", LATER)
