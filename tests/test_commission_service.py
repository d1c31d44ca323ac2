"""Commission settings: seeding, resolution, audited updates."""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from rentcore.core.exceptions import LedgerIntegrityError, ValidationError
from rentcore.core.immutability import ImmutabilityViolationError
from rentcore.models.admin import AuditLog
from rentcore.services.booking_service import booking_service
from rentcore.services.commission_service import CommissionSettingsSnapshot, commission_service
from tests.factories import NOW, book


def _snapshot(**rates) -> CommissionSettingsSnapshot:
    base = {
        "default": Decimal("0.03"),
        "stay": Decimal("0.03"),
        "vehicle": Decimal("0.03"),
        "luxury": Decimal("0.05"),
    }
    base.update(rates)
    return CommissionSettingsSnapshot(
        guest_fee_rate=Decimal("0.08"),
        rates=base,
        luxury_threshold=Decimal("500"),
        reference_currency="EUR",
        fx_rates={"EUR": Decimal("1"), "DZD": Decimal("0.0068")},
    )


async def test_seed_defaults_is_idempotent(db) -> None:
    created = await commission_service.seed_defaults(db)
    assert sorted(row.category for row in created) == [
        "default",
        "guest_fee",
        "luxury",
        "stay",
        "vehicle",
    ]
    assert await commission_service.seed_defaults(db) == []


async def test_snapshot_reads_live_rates(db) -> None:
    snapshot = await commission_service.load_snapshot(db)

    assert snapshot.guest_fee_rate == Decimal("0.08")
    assert snapshot.rates["stay"] == Decimal("0.03")
    assert snapshot.rates["luxury"] == Decimal("0.05")
    assert "guest_fee" not in snapshot.rates
    assert snapshot.version_of("stay") == 1


def test_luxury_rate_applies_above_threshold() -> None:
    snapshot = _snapshot()

    # 80,000 DZD is about 544 EUR a night
    assert snapshot.resolve("stay", 8_000_000, "DZD") == ("luxury", Decimal("0.05"))
    assert snapshot.resolve("vehicle", 50_001, "EUR") == ("luxury", Decimal("0.05"))
    assert snapshot.resolve("vehicle", 50_000, "EUR") == ("vehicle", Decimal("0.03"))
    assert snapshot.resolve("stay", 5000, "DZD") == ("stay", Decimal("0.03"))


def test_unknown_category_and_currency_fall_back() -> None:
    snapshot = _snapshot(default=Decimal("0.04"))

    assert snapshot.resolve("boat", 5000, "DZD") == ("default", Decimal("0.04"))
    # No FX rate, so the luxury check is skipped
    assert snapshot.resolve("stay", 10_000_000, "USD") == ("stay", Decimal("0.03"))


async def test_update_rate_records_history_and_audit(db, admin) -> None:
    entry = await commission_service.update_rate(db, "stay", "0.04", admin.id, "Summer season")

    assert entry.previous_value == Decimal("0.03")
    assert entry.new_value == Decimal("0.04")
    assert entry.version == 2
    assert entry.changed_by == admin.id

    snapshot = await commission_service.load_snapshot(db)
    assert snapshot.rates["stay"] == Decimal("0.04")
    assert snapshot.version_of("stay") == 2

    audit = (
        await db.execute(select(AuditLog).where(AuditLog.action == "commission_update"))
    ).scalar_one()
    assert audit.user_id == admin.id
    assert Decimal(audit.old_values["rate"]) == Decimal("0.03")


async def test_unchanged_rate_is_a_no_op(db, admin) -> None:
    assert await commission_service.update_rate(db, "stay", Decimal("0.03"), admin.id) is None
    assert await commission_service.get_history(db, "stay") == []


async def test_rate_rounded_to_stored_precision(db, admin) -> None:
    assert await commission_service.update_rate(db, "stay", "0.03001", admin.id) is None
    assert await commission_service.get_history(db, "stay") == []

    entry = await commission_service.update_rate(db, "stay", "0.04005", admin.id)
    assert entry.new_value == Decimal("0.0401")
    assert (await commission_service.load_snapshot(db)).rates["stay"] == Decimal("0.0401")

    with pytest.raises(ValidationError):
        await commission_service.update_rate(db, "stay", "Infinity", admin.id)


async def test_rate_outside_bounds_rejected(db, admin) -> None:
    with pytest.raises(LedgerIntegrityError):
        await commission_service.update_rate(db, "vehicle", "0.6", admin.id)
    with pytest.raises(LedgerIntegrityError):
        await commission_service.update_rate(db, "vehicle", "-0.01", admin.id)


async def test_unknown_category_or_value_rejected(db, admin) -> None:
    with pytest.raises(ValidationError):
        await commission_service.update_rate(db, "boat", "0.04", admin.id)
    with pytest.raises(ValidationError):
        await commission_service.update_rate(db, "stay", "cheap", admin.id)


async def test_bulk_update_is_all_or_nothing(db, admin) -> None:
    with pytest.raises(LedgerIntegrityError):
        await commission_service.bulk_update(
            db, {"stay": "0.04", "vehicle": "0.9"}, admin.id, "Bad batch"
        )

    snapshot = await commission_service.load_snapshot(db)
    assert snapshot.rates["stay"] == Decimal("0.03")
    assert snapshot.rates["vehicle"] == Decimal("0.03")

    entries = await commission_service.bulk_update(
        db, {"stay": "0.04", "guest_fee": "0.1"}, admin.id
    )
    assert sorted(entry.category for entry in entries) == ["guest_fee", "stay"]
    snapshot = await commission_service.load_snapshot(db)
    assert snapshot.guest_fee_rate == Decimal("0.1")


async def test_history_newest_first(db, admin) -> None:
    await commission_service.update_rate(db, "stay", "0.04", admin.id)
    await commission_service.update_rate(db, "stay", "0.05", admin.id)

    history = await commission_service.get_history(db, "stay")
    assert [entry.version for entry in history] == [3, 2]
    assert history[0].previous_value == Decimal("0.04")


async def test_existing_booking_keeps_its_rates(db, admin, guest, listing) -> None:
    booking, _ = await book(db, guest, listing)
    await commission_service.update_rate(db, "stay", "0.05", admin.id)

    booking = await booking_service.get(db, booking.id)
    assert booking.host_commission_rate == Decimal("0.03")
    assert booking.host_commission == 465
    assert booking.commission_rate_version == 1

    quote = await booking_service.quote(
        db, guest, listing.id, date(2026, 5, 1), date(2026, 5, 4), NOW
    )
    assert quote.pricing.host_commission == 775
    assert quote.commission_rate_version == 2


async def test_history_is_append_only(db, admin) -> None:
    entry = await commission_service.update_rate(db, "stay", "0.04", admin.id)
    await db.flush()

    entry.reason = "rewritten"
    with pytest.raises(ImmutabilityViolationError):
        await db.flush()
