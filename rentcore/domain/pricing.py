"""Booking price breakdown.

All amounts are integers in the currency's smallest unit. Each derived fee
is rounded on its own with ROUND_HALF_UP, so the breakdown is exact:
``total_amount == host_payout + platform_revenue``.
"""

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from rentcore.core.exceptions import ValidationError

# Minor-unit exponent per supported currency
CURRENCY_EXPONENTS: dict[str, int] = {
    "DZD": 2,
    "EUR": 2,
}


def round_half_up(value: Decimal) -> int:
    """Round to the nearest whole minor unit, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(amount: int, currency: str) -> Decimal:
    """Convert a minor-unit integer into a Decimal amount in major units."""
    exponent = CURRENCY_EXPONENTS.get(currency.upper(), 2)
    return Decimal(amount).scaleb(-exponent)


@dataclass(frozen=True)
class PricingBreakdown:
    base_price: int
    nights: int
    subtotal: int
    cleaning_fee: int
    base_amount: int
    guest_service_fee: int
    host_commission: int
    total_amount: int
    host_payout: int
    platform_revenue: int
    currency: str
    security_deposit: int
    guest_fee_rate: Decimal
    host_commission_rate: Decimal

    @property
    def service_fee(self) -> int:
        """Legacy alias of ``guest_service_fee``."""
        return self.guest_service_fee

    def as_dict(self) -> dict:
        data = asdict(self)
        data["service_fee"] = self.service_fee
        return data


def _check_rate(name: str, rate: Decimal) -> Decimal:
    rate = Decimal(str(rate))
    if rate < 0 or rate > 1:
        raise ValidationError(f"{name} must be between 0 and 1, got {rate}")
    return rate


def compute_pricing(
    base_price: int,
    nights: int,
    cleaning_fee: int,
    guest_fee_rate: Decimal,
    host_commission_rate: Decimal,
    currency: str = "DZD",
    security_deposit: int = 0,
) -> PricingBreakdown:
    """Compute the full price breakdown for a stay.

    Args:
        base_price: Nightly price in minor units
        nights: Number of nights (at least 1)
        cleaning_fee: One-off cleaning fee in minor units
        guest_fee_rate: Guest service fee as a fraction of base + cleaning
        host_commission_rate: Host commission as a fraction of base + cleaning
        currency: ISO currency code
        security_deposit: Refundable deposit, carried on the breakdown only

    Returns:
        PricingBreakdown with every amount in minor units

    Raises:
        ValidationError: On non-positive nights, negative amounts or rates
            outside [0, 1]
    """
    if nights < 1:
        raise ValidationError("A booking must cover at least one night")
    if base_price < 0 or cleaning_fee < 0 or security_deposit < 0:
        raise ValidationError("Prices and fees cannot be negative")

    guest_fee_rate = _check_rate("Guest service fee rate", guest_fee_rate)
    host_commission_rate = _check_rate("Host commission rate", host_commission_rate)

    subtotal = base_price * nights
    base_amount = subtotal + cleaning_fee
    guest_service_fee = round_half_up(Decimal(base_amount) * guest_fee_rate)
    host_commission = round_half_up(Decimal(base_amount) * host_commission_rate)

    return PricingBreakdown(
        base_price=base_price,
        nights=nights,
        subtotal=subtotal,
        cleaning_fee=cleaning_fee,
        base_amount=base_amount,
        guest_service_fee=guest_service_fee,
        host_commission=host_commission,
        total_amount=subtotal + cleaning_fee + guest_service_fee,
        host_payout=base_amount - host_commission,
        platform_revenue=guest_service_fee + host_commission,
        currency=currency.upper(),
        security_deposit=security_deposit,
        guest_fee_rate=guest_fee_rate,
        host_commission_rate=host_commission_rate,
    )


def host_portion_of_share(host_share: int, total_amount: int, host_payout: int) -> int:
    """Host-payable part of an escrow share, net of the platform's proportional cut."""
    if total_amount <= 0 or host_share <= 0:
        return 0
    return round_half_up(Decimal(host_share) * Decimal(host_payout) / Decimal(total_amount))
