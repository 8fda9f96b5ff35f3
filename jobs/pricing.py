"""
Booking-time price breakdown and completion-time payout summary.

These are two independent fee calculations. The breakdown is computed once
from the selected services and stored on the job; the payout summary is
recomputed from the job's payout when the mechanic completes the job. Nothing
reconciles the two.
"""
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def _to_money(value):
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def tax_rate() -> Decimal:
    return Decimal(str(settings.MECHANICNOW.get("TAX_RATE", "0.08")))


def platform_fee_rate() -> Decimal:
    return Decimal(str(settings.MECHANICNOW.get("PLATFORM_FEE_RATE", "0.20")))


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    platform_fee: Decimal
    mechanic_payout: Decimal

    def to_dict(self):
        return {key: str(value) for key, value in asdict(self).items()}


@dataclass(frozen=True)
class PayoutSummary:
    base_labor: Decimal
    parts_cost: Decimal
    customer_total: Decimal
    platform_fee: Decimal
    mechanic_net: Decimal

    def to_dict(self):
        return {key: str(value) for key, value in asdict(self).items()}


def compute_price_breakdown(services) -> PriceBreakdown:
    """
    Price a booking from its selected catalog items.

    The platform fee is taken from the labor subtotal only, never from tax,
    and the mechanic payout is whatever is left of the subtotal so that
    payout + fee always equals the subtotal to the cent.
    """
    subtotal = _to_money(sum((item.price for item in services), ZERO))
    tax = _to_money(subtotal * tax_rate())
    platform_fee = _to_money(subtotal * platform_fee_rate())
    return PriceBreakdown(
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
        platform_fee=platform_fee,
        mechanic_payout=subtotal - platform_fee,
    )


def capture_amount(payout, parts_cost=ZERO) -> Decimal:
    """
    Amount to capture on card settlement: (payout + parts) grossed back up by
    the platform fee, i.e. x1.25 at the default 20% fee.
    """
    multiplier = Decimal(1) / (Decimal(1) - platform_fee_rate())
    return _to_money((_to_money(payout) + _to_money(parts_cost)) * multiplier)


def completion_summary(payout, parts_cost=ZERO) -> PayoutSummary:
    base_labor = _to_money(payout)
    parts = _to_money(parts_cost)
    customer_total = base_labor + parts
    platform_fee = _to_money(base_labor * platform_fee_rate())
    return PayoutSummary(
        base_labor=base_labor,
        parts_cost=parts,
        customer_total=customer_total,
        platform_fee=platform_fee,
        mechanic_net=customer_total - platform_fee,
    )
