# carebill/services/billing_math.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Optional

from carebill.models.billing import BillStatus, DiscountType

D0 = Decimal("0.00")
D100 = Decimal("100")


def D(x) -> Decimal:
    try:
        return Decimal(str(x if x is not None else 0))
    except Exception:
        return Decimal("0")


def money2(x) -> Decimal:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def line_amount(quantity, rate) -> Decimal:
    return money2(D(quantity) * D(rate))


def discount_amount_for(gross, discount_type: Optional[DiscountType],
                        value) -> Decimal:
    """
    Flat       -> value
    Percentage -> gross * value / 100
    Always clamped to [0, gross].
    """
    gross = money2(gross)
    if not discount_type:
        return D0
    value = D(value)
    if discount_type == DiscountType.PERCENTAGE:
        amt = gross * value / D100
    else:
        amt = value
    amt = money2(amt)
    if amt < 0:
        return D0
    if amt > gross:
        return gross
    return amt


@dataclass(frozen=True)
class BillTotals:
    gross_amount: Decimal
    discount_amount: Decimal
    net_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    outstanding: Decimal
    status: BillStatus


def compute_bill_totals(
    lines: Iterable[Any],
    discount_type: Optional[DiscountType],
    discount_value,
    paid_amount,
) -> BillTotals:
    """
    Pure recomputation of every derived bill figure from
    (services, discount, paid). Lines need .quantity and .rate.
    """
    gross = D0
    for ln in lines:
        gross += line_amount(getattr(ln, "quantity", 0), getattr(ln, "rate", 0))
    gross = money2(gross)

    disc = discount_amount_for(gross, discount_type, discount_value)
    net = money2(gross - disc)
    paid = money2(paid_amount)
    balance = money2(net - paid)
    outstanding = balance if balance > 0 else D0

    return BillTotals(
        gross_amount=gross,
        discount_amount=disc,
        net_amount=net,
        paid_amount=paid,
        balance=balance,
        outstanding=outstanding,
        status=BillStatus.PAID if balance <= 0 else BillStatus.PENDING,
    )


def recalc_bill(bill) -> BillTotals:
    """Write compute_bill_totals() back onto a Bill row."""
    totals = compute_bill_totals(
        bill.services or [],
        bill.discount_type,
        bill.discount_value,
        bill.paid_amount,
    )
    bill.gross_amount = totals.gross_amount
    bill.discount_amount = totals.discount_amount
    bill.net_amount = totals.net_amount
    bill.total_amount = totals.net_amount
    bill.paid_amount = totals.paid_amount
    bill.balance = totals.balance
    bill.outstanding = totals.outstanding
    bill.status = totals.status
    return totals
