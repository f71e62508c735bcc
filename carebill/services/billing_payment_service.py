# FILE: carebill/services/billing_payment_service.py
from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from carebill.models.billing import Bill, BillPayment, DiscountType, PayMode
from carebill.services.billing_errors import BillingValidationError
from carebill.services.billing_ledger import get_bill_by_id_for_update, run_atomic
from carebill.services.billing_math import D, money2, recalc_bill
from carebill.utils.timezone import now_local

logger = logging.getLogger(__name__)


def _enum_value(enum_cls, x, label: str):
    if isinstance(x, enum_cls):
        return x
    s = str(x or "").strip()
    for m in enum_cls:
        if s.lower() in (m.value.lower(), m.name.lower()):
            return m
    allowed = ", ".join(m.value for m in enum_cls)
    raise BillingValidationError(f"Invalid {label} '{s}' (allowed: {allowed})")


# ------------------------------------------------------------
# Discount
# ------------------------------------------------------------
def apply_discount(
    db: Session,
    bill_id: int,
    *,
    discount_type,
    value,
    reason: Optional[str] = None,
    applied_by: Optional[str] = None,
) -> Bill:
    """
    Replace the bill's header discount and recompute.
      Flat       -> amount = value
      Percentage -> amount = gross * value / 100
    The applied amount is clamped to [0, gross] on every recomputation, so a
    150% or an oversized flat discount zeroes the bill instead of failing.
    """
    dtype = _enum_value(DiscountType, discount_type, "discount type")
    val = money2(value)

    def _work(db: Session) -> Bill:
        bill = get_bill_by_id_for_update(db, bill_id)
        bill.discount_type = dtype
        bill.discount_value = val
        bill.discount_reason = (reason or "").strip() or None
        bill.discount_applied_by = str(applied_by) if applied_by else None
        bill.discount_applied_at = now_local()
        recalc_bill(bill)
        db.flush()
        return bill

    bill = run_atomic(db, _work)
    logger.info("Discount %s %s applied on bill %s (amount=%s)", dtype.value,
                val, bill_id, bill.discount_amount)
    return bill


# ------------------------------------------------------------
# Payment
# ------------------------------------------------------------
def post_payment(
    bill: Bill,
    *,
    amount,
    mode,
    reference: Optional[str] = None,
    recorded_by: Optional[str] = None,
) -> BillPayment:
    """
    Append one payment to a bill already locked by the caller. Payments are
    never capped: an overpayment leaves a negative balance on record while
    outstanding floors at zero.
    """
    amt = money2(amount)
    pay_mode = _enum_value(PayMode, mode, "payment mode")

    if amt <= 0:
        raise BillingValidationError("Payment amount must be > 0")

    pay = BillPayment(
        amount=amt,
        mode=pay_mode,
        reference=(reference or "").strip() or None,
        paid_at=now_local(),
        recorded_by=str(recorded_by) if recorded_by else None,
    )
    bill.payments.append(pay)
    bill.paid_amount = money2(D(bill.paid_amount) + amt)
    recalc_bill(bill)
    return pay


def add_payment(
    db: Session,
    bill_id: int,
    *,
    amount,
    mode,
    reference: Optional[str] = None,
    recorded_by: Optional[str] = None,
) -> Bill:
    def _work(db: Session) -> Bill:
        bill = get_bill_by_id_for_update(db, bill_id)
        post_payment(bill,
                     amount=amount,
                     mode=mode,
                     reference=reference,
                     recorded_by=recorded_by)
        db.flush()
        return bill

    bill = run_atomic(db, _work)
    logger.info("Payment %s recorded on bill %s, outstanding=%s",
                money2(amount), bill_id, bill.outstanding)
    return bill
