# FILE: carebill/services/billing_insurance.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from carebill.models.billing import Bill
from carebill.models.ipd import Admission
from carebill.models.payer import InsuranceCompany
from carebill.services.billing_errors import (
    BillingValidationError,
    MissingDependencyError,
)
from carebill.services.billing_ledger import get_bill_for_update, run_atomic
from carebill.services.billing_math import line_amount, money2, recalc_bill
from carebill.services.rate_resolver import (
    APPROVAL_STATUSES,
    APPROVED,
    PayerContext,
    RateResolver,
    map_lookup,
    payer_context_for_case,
)

logger = logging.getLogger(__name__)


# ----------------------------
# re-resolution
# ----------------------------
def reresolve_bill(db: Session, bill: Bill, payer: PayerContext) -> Dict[str, Any]:
    """
    Re-price every catalog-keyed line of a locked bill against the single
    price list active for `payer`. Quantities and billed dates never change;
    a key missing from that list keeps its current rate.
    """
    old_total = money2(bill.net_amount)
    rates = RateResolver(db, bill.hospital_id).rate_map(payer)

    updated = 0
    for line in bill.services:
        hit = map_lookup(rates, line.rate_key, line.department_id)
        if hit is None:
            continue

        amount = line_amount(line.quantity, hit.rate)
        details = dict(line.details or {})
        details["totalCharge"] = float(amount)
        details["insuranceCovered"] = hit.insurance_covered

        if money2(line.rate) != hit.rate:
            updated += 1
        line.rate = hit.rate
        line.amount = amount
        line.catalog_entry_id = hit.entry_id
        # reassign so the JSON column is flagged dirty
        line.details = details

    totals = recalc_bill(bill)
    db.flush()

    logger.info("Case %s re-priced (%s line(s) changed): %s -> %s",
                bill.case_id, updated, old_total, totals.net_amount)
    return {
        "case_id": bill.case_id,
        "old_total": old_total,
        "new_total": totals.net_amount,
        "lines_updated": updated,
    }


def recalculate_for_insurance_change(db: Session, case_id: str) -> Dict[str, Any]:
    def _work(db: Session) -> Dict[str, Any]:
        bill = get_bill_for_update(db, case_id)
        if not bill:
            raise MissingDependencyError(f"No bill found for case {case_id}")
        return reresolve_bill(db, bill, payer_context_for_case(db, case_id))

    return run_atomic(db, _work)


# ----------------------------
# status change
# ----------------------------
def update_insurance_status(
    db: Session,
    case_id: str,
    *,
    approval_status: str,
    insurer_id: Optional[int] = None,
    amount_approved=None,
    policy_number: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Update the admission's insurance record; when the payer context actually
    changed and the case has a bill, re-price it in the same transaction.
    """
    status = (approval_status or "").strip().lower()
    if status not in APPROVAL_STATUSES:
        raise BillingValidationError(
            f"Invalid approval status '{approval_status}' "
            f"(allowed: {', '.join(APPROVAL_STATUSES)})")

    def _work(db: Session) -> Dict[str, Any]:
        adm = (db.query(Admission).filter(
            Admission.case_id == str(case_id)).with_for_update().first())
        if not adm:
            raise MissingDependencyError(f"No admission found for case {case_id}")

        new_insurer = int(insurer_id) if insurer_id else adm.insurer_id
        if new_insurer:
            ins = db.get(InsuranceCompany, int(new_insurer))
            if not ins or int(ins.hospital_id) != int(adm.hospital_id):
                raise MissingDependencyError("Insurance company not found")
        if status == APPROVED and not new_insurer:
            raise BillingValidationError(
                "An insurance company is required to approve insurance")

        old_status = (adm.insurance_approved or "pending").strip().lower()
        changed = (old_status != status or adm.insurer_id != new_insurer)

        adm.insurance_approved = status
        adm.insurer_id = new_insurer
        if new_insurer:
            adm.has_insurance = True
        if amount_approved is not None:
            adm.amount_approved = money2(amount_approved)
        if policy_number is not None:
            adm.policy_number = policy_number.strip() or None
        db.flush()

        repriced = None
        if changed:
            bill = get_bill_for_update(db, case_id)
            if bill is not None:
                repriced = reresolve_bill(db, bill,
                                          payer_context_for_case(db, case_id))

        return {
            "case_id": str(case_id),
            "insurance_approved": adm.insurance_approved,
            "insurer_id": adm.insurer_id,
            "amount_approved": money2(adm.amount_approved),
            "repriced": repriced,
        }

    out = run_atomic(db, _work)
    logger.info("Case %s insurance -> %s (insurer=%s)", case_id, status,
                out["insurer_id"])
    return out
