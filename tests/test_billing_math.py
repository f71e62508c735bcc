"""Totals recomputation and discount clamping."""

from decimal import Decimal
from types import SimpleNamespace

from carebill.models.billing import BillStatus, DiscountType
from carebill.services.billing_math import (
    compute_bill_totals,
    discount_amount_for,
    line_amount,
    money2,
)


def _line(qty, rate):
    return SimpleNamespace(quantity=Decimal(str(qty)), rate=Decimal(str(rate)))


class TestLineAmount:
    def test_rounds_half_up(self):
        assert line_amount("1.5", "10.005") == Decimal("15.01")

    def test_money2_tolerates_none(self):
        assert money2(None) == Decimal("0.00")


class TestDiscount:
    def test_no_discount_type_is_zero(self):
        assert discount_amount_for(Decimal("500"), None, 50) == Decimal("0.00")

    def test_percentage(self):
        assert discount_amount_for(Decimal("500"), DiscountType.PERCENTAGE,
                                   10) == Decimal("50.00")

    def test_flat_above_gross_is_clamped(self):
        assert discount_amount_for(Decimal("300"), DiscountType.FLAT,
                                   1000) == Decimal("300.00")

    def test_negative_is_clamped_to_zero(self):
        assert discount_amount_for(Decimal("300"), DiscountType.FLAT,
                                   -5) == Decimal("0.00")


class TestComputeTotals:
    def test_total_invariant(self):
        t = compute_bill_totals([_line(2, 250), _line(1, "99.50")],
                                DiscountType.FLAT, 49.5, 100)
        assert t.gross_amount == Decimal("599.50")
        assert t.net_amount == t.gross_amount - t.discount_amount
        assert t.net_amount == Decimal("550.00")
        assert t.balance == Decimal("450.00")
        assert t.outstanding == Decimal("450.00")
        assert t.status == BillStatus.PENDING

    def test_paid_exactly_is_paid(self):
        t = compute_bill_totals([_line(1, 500)], None, 0, 500)
        assert t.outstanding == Decimal("0.00")
        assert t.status == BillStatus.PAID

    def test_overpaid_keeps_signed_balance(self):
        # discount raised after payment: outstanding floors at zero
        t = compute_bill_totals([_line(1, 500)], DiscountType.FLAT, 100, 450)
        assert t.balance == Decimal("-50.00")
        assert t.outstanding == Decimal("0.00")
        assert t.status == BillStatus.PAID

    def test_empty_bill_is_paid(self):
        t = compute_bill_totals([], None, 0, 0)
        assert t.gross_amount == Decimal("0.00")
        assert t.status == BillStatus.PAID
