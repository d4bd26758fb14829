# Overview: Pure pricing and interest arithmetic for purchases; no database writes.

"""
Pricing & interest calculator.

All amounts are integer minor units. Rates are basis points (1000 = 10%).

FLAT:    interest = subtotal * rate
MONTHLY: interest = subtotal * rate * tenor_days / 30

tenor_days / 30 is the only months approximation used anywhere. Interest is
rounded half-up to the nearest minor unit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import PolicyMissing, TenorExceeded, ValidationError
from ..models.purchases import PURCHASE_CASH, PURCHASE_LAYAWAY, PURCHASE_CREDIT
from ..models.tenancy import INTEREST_FLAT, INTEREST_MONTHLY

BPS_DENOMINATOR = 10_000
DAYS_PER_MONTH = 30


@dataclass(frozen=True)
class PurchaseTotals:
    subtotal_cents: int
    interest_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "interest_amount_cents": self.interest_cents,
            "total_amount_cents": self.total_cents,
        }


def _line_value(item, key: str) -> int:
    if isinstance(item, dict):
        return int(item[key])
    return int(getattr(item, key))


def compute_subtotal(items: Iterable) -> int:
    """Sum of unit_price_cents * quantity. Accepts dicts or PurchaseItem rows."""
    return sum(_line_value(i, "unit_price_cents") * _line_value(i, "quantity") for i in items)


def _round_half_up_div(numerator: int, denominator: int) -> int:
    # Non-negative operands only
    return (2 * numerator + denominator) // (2 * denominator)


def compute_interest(subtotal_cents: int, interest_type: str | None, interest_rate_bps: int, tenor_days: int | None) -> int:
    if not interest_rate_bps or subtotal_cents <= 0:
        return 0

    if interest_type == INTEREST_MONTHLY:
        days = tenor_days or 0
        return _round_half_up_div(subtotal_cents * interest_rate_bps * days, BPS_DENOMINATOR * DAYS_PER_MONTH)

    if interest_type in (None, INTEREST_FLAT):
        return _round_half_up_div(subtotal_cents * interest_rate_bps, BPS_DENOMINATOR)

    raise ValidationError(f"Unknown interest type: {interest_type}")


def calculate_totals(items: Iterable, purchase_type: str, tenor_days: int | None, policy) -> PurchaseTotals:
    """
    Price a new purchase against the business policy.

    Raises:
        PolicyMissing: non-CASH purchase and no policy
        TenorExceeded: non-CASH tenor beyond policy.max_tenor_days
    """
    if purchase_type not in (PURCHASE_CASH, PURCHASE_LAYAWAY, PURCHASE_CREDIT):
        raise ValidationError(f"Invalid purchase type: {purchase_type}")

    subtotal = compute_subtotal(items)

    if purchase_type == PURCHASE_CASH:
        return PurchaseTotals(subtotal_cents=subtotal, interest_cents=0, total_cents=subtotal)

    if policy is None:
        raise PolicyMissing("No business policy is configured for credit purchases")

    if tenor_days is not None and tenor_days > policy.max_tenor_days:
        raise TenorExceeded(
            f"Tenor of {tenor_days} days exceeds the maximum of {policy.max_tenor_days} days",
            details={"tenor_days": tenor_days, "max_tenor_days": policy.max_tenor_days},
        )

    interest = compute_interest(subtotal, policy.interest_type, policy.interest_rate_bps, tenor_days)
    return PurchaseTotals(subtotal_cents=subtotal, interest_cents=interest, total_cents=subtotal + interest)


def recalculate_totals(items: Iterable, interest_type: str | None, interest_rate_bps: int, tenor_days: int | None) -> PurchaseTotals:
    """Edit-path pricing using the terms stored on the purchase, not the live policy."""
    subtotal = compute_subtotal(items)
    interest = compute_interest(subtotal, interest_type, interest_rate_bps, tenor_days)
    return PurchaseTotals(subtotal_cents=subtotal, interest_cents=interest, total_cents=subtotal + interest)


def apply_down_payment(total_cents: int, down_payment_cents: int) -> tuple[int, int]:
    """Clamp the down payment to the total. Returns (down_payment, outstanding)."""
    down = max(0, min(down_payment_cents or 0, total_cents))
    return down, max(0, total_cents - down)


def resolve_unit_price(shop_product, purchase_type: str) -> int:
    """
    Tier price for a shop product.

    Shop override first, then the catalog tier price; a tier price of 0 falls
    back to the catalog base price.
    """
    product = shop_product.product
    if purchase_type == PURCHASE_CASH:
        override, tier = shop_product.cash_price_cents, product.cash_price_cents
    elif purchase_type == PURCHASE_LAYAWAY:
        override, tier = shop_product.layaway_price_cents, product.layaway_price_cents
    else:
        override, tier = shop_product.credit_price_cents, product.credit_price_cents

    if override:
        return override
    if tier:
        return tier
    return product.price_cents


def format_amount(cents: int, symbol: str = "₵") -> str:
    """Render minor units for staff-facing messages (12345 -> ₵123.45)."""
    sign = "-" if cents < 0 else ""
    major, minor = divmod(abs(int(cents)), 100)
    return f"{sign}{symbol}{major:,}.{minor:02d}"
