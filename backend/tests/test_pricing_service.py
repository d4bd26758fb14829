# Overview: Pytest coverage for pricing and interest arithmetic.

from types import SimpleNamespace

import pytest

from hirepay.errors import PolicyMissing, TenorExceeded, ValidationError
from hirepay.services.pricing_service import (
    apply_down_payment,
    calculate_totals,
    compute_interest,
    compute_subtotal,
    format_amount,
    recalculate_totals,
    resolve_unit_price,
)


def _policy(interest_type="FLAT", rate_bps=1000, max_tenor_days=90):
    return SimpleNamespace(interest_type=interest_type, interest_rate_bps=rate_bps, max_tenor_days=max_tenor_days)


def _lines(*pairs):
    return [{"unit_price_cents": price, "quantity": qty} for price, qty in pairs]


class TestInterest:
    def test_flat_interest_on_credit_purchase(self):
        """1000.00 at FLAT 10% over 60 days: 100.00 interest."""
        totals = calculate_totals(_lines((100000, 1)), "CREDIT", 60, _policy())
        assert totals.subtotal_cents == 100000
        assert totals.interest_cents == 10000
        assert totals.total_cents == 110000

    def test_monthly_interest_scales_with_tenor(self):
        """500.00 at MONTHLY 5% over 90 days: three months, 75.00 interest."""
        totals = calculate_totals(_lines((50000, 1)), "LAYAWAY", 90, _policy("MONTHLY", 500))
        assert totals.interest_cents == 7500
        assert totals.total_cents == 57500

    def test_monthly_interest_partial_month(self):
        # 45 days is 1.5 months
        assert compute_interest(10000, "MONTHLY", 1000, 45) == 1500

    def test_cash_has_no_interest_even_without_policy(self):
        totals = calculate_totals(_lines((10000, 1), (5000, 2)), "CASH", None, None)
        assert totals.subtotal_cents == 20000
        assert totals.interest_cents == 0
        assert totals.total_cents == 20000

    def test_rounds_half_up(self):
        assert compute_interest(5, "FLAT", 1000, None) == 1
        assert compute_interest(4, "FLAT", 1000, None) == 0
        assert compute_interest(15, "FLAT", 1000, None) == 2

    def test_zero_rate_is_zero_interest(self):
        assert compute_interest(100000, "FLAT", 0, 60) == 0

    def test_unknown_interest_type(self):
        with pytest.raises(ValidationError):
            compute_interest(100, "WEEKLY", 1000, 30)


class TestPolicyRules:
    def test_credit_without_policy(self):
        with pytest.raises(PolicyMissing):
            calculate_totals(_lines((100000, 1)), "CREDIT", 30, None)

    def test_tenor_beyond_policy_maximum(self):
        with pytest.raises(TenorExceeded) as exc:
            calculate_totals(_lines((100000, 1)), "LAYAWAY", 120, _policy(max_tenor_days=90))
        assert exc.value.details["max_tenor_days"] == 90

    def test_tenor_at_policy_maximum_is_allowed(self):
        totals = calculate_totals(_lines((100000, 1)), "CREDIT", 90, _policy(max_tenor_days=90))
        assert totals.total_cents == 110000

    def test_invalid_purchase_type(self):
        with pytest.raises(ValidationError):
            calculate_totals(_lines((100, 1)), "BARTER", None, _policy())

    def test_recalculate_uses_stored_terms(self):
        totals = recalculate_totals(_lines((10000, 2)), "MONTHLY", 500, 60)
        assert totals.subtotal_cents == 20000
        assert totals.interest_cents == 2000


class TestHelpers:
    def test_subtotal_accepts_objects(self):
        rows = [SimpleNamespace(unit_price_cents=250, quantity=4), SimpleNamespace(unit_price_cents=100, quantity=1)]
        assert compute_subtotal(rows) == 1100

    def test_down_payment_is_clamped(self):
        assert apply_down_payment(110000, 20000) == (20000, 90000)
        assert apply_down_payment(110000, 500000) == (110000, 0)
        assert apply_down_payment(110000, 0) == (0, 110000)

    def test_unit_price_resolution_order(self):
        product = SimpleNamespace(price_cents=1000, cash_price_cents=900, layaway_price_cents=0, credit_price_cents=1200)
        row = SimpleNamespace(product=product, cash_price_cents=None, layaway_price_cents=None, credit_price_cents=1100)

        # Shop override wins
        assert resolve_unit_price(row, "CREDIT") == 1100
        # Catalog tier price
        assert resolve_unit_price(row, "CASH") == 900
        # Zero tier falls back to base price
        assert resolve_unit_price(row, "LAYAWAY") == 1000

    def test_format_amount(self):
        assert format_amount(123456) == "₵1,234.56"
        assert format_amount(5) == "₵0.05"
        assert format_amount(-90000) == "-₵900.00"
