# payments/fees.py
# ============================================================================
# STOREFRONT PAYMENTS — MONEY + PLATFORM FEE ARITHMETIC
# ============================================================================
# Money stays Decimal until to_minor_units(); everything after that is int
# minor units. Rounding is half-up everywhere.
# ============================================================================

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from storefront.errors import InvalidAmountError
from storefront.schemas.models import ChargeMode

HUNDRED = Decimal("100")


def to_minor_units(total: Decimal) -> int:
    """Convert a decimal currency amount to integer cents."""
    return int((Decimal(total) * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_platform_fee(
    amount_minor_units: int,
    fee_percentage: Decimal,
    fixed_fee: int = 0,
) -> int:
    """fee = round(amount * pct / 100) + fixed, in minor units."""
    percentage_fee = (
        Decimal(amount_minor_units) * Decimal(fee_percentage) / HUNDRED
    ).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(percentage_fee) + fixed_fee


@dataclass(frozen=True)
class FeeSplit:
    amount: int
    platform_fee: Optional[int] = None
    seller_payout: Optional[int] = None


def split_charge(
    amount_minor_units: int,
    mode: ChargeMode,
    fee_percentage: Decimal,
    fixed_fee: int = 0,
) -> FeeSplit:
    """
    Split a charge between platform and seller.

    The seller payout is always derived as amount - fee, so the two parts sum
    to the charge exactly.
    """
    if amount_minor_units <= 0:
        raise InvalidAmountError("Order total must be greater than zero")

    if mode == ChargeMode.PLATFORM:
        return FeeSplit(amount=amount_minor_units)

    fee = calculate_platform_fee(amount_minor_units, fee_percentage, fixed_fee)
    if fee > amount_minor_units:
        raise InvalidAmountError(
            "Order total is too small to cover the platform fee",
            {"amount": amount_minor_units, "platformFee": fee},
        )

    return FeeSplit(
        amount=amount_minor_units,
        platform_fee=fee,
        seller_payout=amount_minor_units - fee,
    )
