"""Commission rate resolution and administration.

Live rates are stored per category in ``commission_rates``; the guest
service fee is kept in the same table under the ``guest_fee`` key. A
booking never reads live rates directly: it takes a
``CommissionSettingsSnapshot`` at creation time and stores the resolved
rates and version on itself.
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.config import settings
from rentcore.core.exceptions import ConflictError, LedgerIntegrityError, ValidationError
from rentcore.database import utcnow
from rentcore.domain.pricing import to_major_units
from rentcore.models.commission import CommissionRate, CommissionRateHistory
from rentcore.services.audit_service import audit_service

logger = logging.getLogger(__name__)

GUEST_FEE_KEY = "guest_fee"
HOST_CATEGORIES = ("default", "stay", "vehicle", "luxury")
RATE_KEYS = HOST_CATEGORIES + (GUEST_FEE_KEY,)
RATE_PRECISION = Decimal("0.0001")


@dataclass(frozen=True)
class CommissionSettingsSnapshot:
    """Immutable view of commission settings at one point in time."""

    guest_fee_rate: Decimal
    rates: dict[str, Decimal]
    versions: dict[str, int] = field(default_factory=dict)
    luxury_threshold: Decimal = Decimal("500")
    reference_currency: str = "EUR"
    fx_rates: dict[str, Decimal] = field(default_factory=dict)

    def to_reference(self, nightly_price: int, currency: str) -> Decimal | None:
        """Nightly price in reference-currency major units, None if not convertible."""
        fx = self.fx_rates.get(currency.upper())
        if fx is None:
            return None
        return to_major_units(nightly_price, currency) * fx

    def resolve(self, category: str, nightly_price: int, currency: str) -> tuple[str, Decimal]:
        """Pick the commission rate for a listing.

        Returns:
            (rate key used, rate as a fraction)
        """
        if "luxury" in self.rates:
            converted = self.to_reference(nightly_price, currency)
            if converted is not None and converted > self.luxury_threshold:
                return "luxury", self.rates["luxury"]

        if category in self.rates:
            return category, self.rates[category]

        return "default", self.rates["default"]

    def version_of(self, key: str) -> int:
        return self.versions.get(key, 1)


class CommissionService:
    """Service for commission settings and their audited history."""

    def default_snapshot(self) -> CommissionSettingsSnapshot:
        """Snapshot built from configuration alone (seed values)."""
        return CommissionSettingsSnapshot(
            guest_fee_rate=settings.guest_service_fee_rate,
            rates=dict(settings.default_commission_rates),
            luxury_threshold=settings.luxury_threshold,
            reference_currency=settings.reference_currency,
            fx_rates=dict(settings.fx_rates_to_reference),
        )

    async def seed_defaults(self, db: AsyncSession) -> list[CommissionRate]:
        """Insert any missing rate rows from configuration."""
        result = await db.execute(select(CommissionRate.category))
        existing = set(result.scalars().all())

        defaults = dict(settings.default_commission_rates)
        defaults[GUEST_FEE_KEY] = settings.guest_service_fee_rate

        created = []
        for key, rate in defaults.items():
            if key in existing:
                continue
            row = CommissionRate(
                category=key,
                rate=rate,
                min_value=settings.commission_min_rate,
                max_value=settings.commission_max_rate,
                version=1,
            )
            db.add(row)
            created.append(row)

        if created:
            await db.flush()
            logger.info(f"Seeded commission rates: {[row.category for row in created]}")
        return created

    async def get_rates(self, db: AsyncSession) -> list[CommissionRate]:
        await self.seed_defaults(db)
        result = await db.execute(
            select(CommissionRate)
            .order_by(CommissionRate.category)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def load_snapshot(self, db: AsyncSession) -> CommissionSettingsSnapshot:
        """Read the current settings into an immutable snapshot."""
        rows = await self.get_rates(db)
        rates = {row.category: Decimal(row.rate) for row in rows if row.category != GUEST_FEE_KEY}
        versions = {row.category: row.version for row in rows}
        guest_fee = next(
            (Decimal(row.rate) for row in rows if row.category == GUEST_FEE_KEY),
            settings.guest_service_fee_rate,
        )
        return CommissionSettingsSnapshot(
            guest_fee_rate=guest_fee,
            rates=rates,
            versions=versions,
            luxury_threshold=settings.luxury_threshold,
            reference_currency=settings.reference_currency,
            fx_rates=dict(settings.fx_rates_to_reference),
        )

    async def resolve_rate(
        self, db: AsyncSession, category: str, nightly_price: int, currency: str
    ) -> Decimal:
        snapshot = await self.load_snapshot(db)
        return snapshot.resolve(category, nightly_price, currency)[1]

    def _parse_rate(self, key: str, value) -> Decimal:
        if key not in RATE_KEYS:
            raise ValidationError(f"Unknown commission category: {key}")
        try:
            rate = Decimal(str(value))
            if not rate.is_finite():
                raise InvalidOperation
            # Stored as Numeric(6, 4)
            return rate.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)
        except (InvalidOperation, ValueError) as e:
            raise ValidationError(f"{key}: invalid rate {value!r}") from e

    async def _lock_row(self, db: AsyncSession, key: str) -> CommissionRate:
        result = await db.execute(
            select(CommissionRate)
            .where(CommissionRate.category == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise ValidationError(f"Commission category {key} is not configured")
        return row

    async def update_rate(
        self,
        db: AsyncSession,
        category: str,
        new_value,
        actor_id: UUID,
        reason: str | None = None,
    ) -> CommissionRateHistory | None:
        """Change one rate and append its history entry.

        Returns:
            The history entry, or None when the value is unchanged

        Raises:
            LedgerIntegrityError: If the value is outside the category bounds
            ConflictError: If another admin changed the rate concurrently
        """
        await self.seed_defaults(db)
        rate = self._parse_rate(category, new_value)
        row = await self._lock_row(db, category)
        return await self._apply(db, row, rate, actor_id, reason)

    async def _apply(
        self,
        db: AsyncSession,
        row: CommissionRate,
        rate: Decimal,
        actor_id: UUID,
        reason: str | None,
    ) -> CommissionRateHistory | None:
        if rate < row.min_value or rate > row.max_value:
            raise LedgerIntegrityError(
                f"{row.category}: rate {rate} outside bounds [{row.min_value}, {row.max_value}]"
            )

        previous = Decimal(row.rate)
        if previous == rate:
            return None

        now = utcnow()
        result = await db.execute(
            update(CommissionRate)
            .where(CommissionRate.id == row.id, CommissionRate.version == row.version)
            .values(rate=rate, version=row.version + 1, updated_by=actor_id, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(f"Commission rate {row.category} was changed concurrently")
        await db.refresh(row)

        entry = CommissionRateHistory(
            category=row.category,
            previous_value=previous,
            new_value=rate,
            version=row.version,
            changed_by=actor_id,
            reason=reason,
            changed_at=now,
        )
        db.add(entry)
        await audit_service.log_financial_action(
            db,
            user_id=actor_id,
            action="commission_update",
            resource_type="commission_rate",
            resource_id=row.id,
            old_values={"rate": str(previous)},
            new_values={"rate": str(rate), "version": row.version, "reason": reason},
        )
        await db.flush()

        logger.info(f"Commission {row.category}: {previous} -> {rate} (v{row.version}) by {actor_id}")
        return entry

    async def bulk_update(
        self,
        db: AsyncSession,
        rates: dict[str, object],
        actor_id: UUID,
        reason: str | None = None,
    ) -> list[CommissionRateHistory]:
        """Update several rates at once; either all apply or none do.

        Raises:
            ValidationError: Unknown category or unparsable value
            LedgerIntegrityError: Any value outside its bounds
        """
        if not rates:
            raise ValidationError("No commission rates provided")

        await self.seed_defaults(db)
        parsed = {key: self._parse_rate(key, value) for key, value in rates.items()}

        # Lock in a stable order, then validate every bound before writing
        rows = {key: await self._lock_row(db, key) for key in sorted(parsed)}
        for key, rate in parsed.items():
            row = rows[key]
            if rate < row.min_value or rate > row.max_value:
                raise LedgerIntegrityError(
                    f"{key}: rate {rate} outside bounds [{row.min_value}, {row.max_value}]"
                )

        entries = []
        for key in sorted(parsed):
            entry = await self._apply(
                db, rows[key], parsed[key], actor_id, reason or "Bulk commission update"
            )
            if entry is not None:
                entries.append(entry)
        return entries

    async def get_history(
        self, db: AsyncSession, category: str, limit: int = 20
    ) -> list[CommissionRateHistory]:
        """Most recent changes for a category, newest first."""
        if category not in RATE_KEYS:
            raise ValidationError(f"Unknown commission category: {category}")
        result = await db.execute(
            select(CommissionRateHistory)
            .where(CommissionRateHistory.category == category)
            .order_by(CommissionRateHistory.version.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


commission_service = CommissionService()
