# FILE: carebill/services/billing_ledger.py
"""
Bill ledger: one running Bill per case.

merge_charges() is the only way charges land on a bill from the clinical
workflows. It never commits; run_atomic() is the unit-of-work boundary
(commit, or roll back and retry on a concurrent writer).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from carebill.core.config import settings
from carebill.models.billing import Bill, BillMode, BillServiceLine, BillStatus
from carebill.models.opd import Appointment
from carebill.models.patient import Patient
from carebill.services.billing_charges import (
    ChargeLine,
    build_catalog_charge,
    build_expense_charge,
    recurring_line_key,
)
from carebill.services.billing_errors import (
    BillingValidationError,
    ConcurrentUpdateError,
    MissingDependencyError,
)
from carebill.services.billing_math import D, line_amount, money2, recalc_bill
from carebill.services.billing_numbers import next_invoice_number
from carebill.services.rate_resolver import RateResolver, payer_context_for_case
from carebill.utils.timezone import now_local

logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETRYABLE = (StaleDataError, IntegrityError)


# ============================================================
# Unit of work
# ============================================================
def run_atomic(db: Session,
               work: Callable[[Session], T],
               *,
               attempts: Optional[int] = None) -> T:
    """
    Run work(db) and commit. A version-counter mismatch or a unique-key race
    (two writers creating the same bill / line) rolls back and replays the
    whole unit. Any other error rolls back and propagates.
    """
    tries = max(1, int(attempts or settings.BILLING_TX_RETRIES or 1))
    last_exc: Optional[Exception] = None

    for attempt in range(1, tries + 1):
        try:
            result = work(db)
            db.commit()
            return result
        except _RETRYABLE as e:
            db.rollback()
            last_exc = e
            logger.warning("Concurrent bill update, retry %s/%s: %s", attempt,
                           tries, e.__class__.__name__)
        except Exception:
            db.rollback()
            raise

    raise ConcurrentUpdateError(
        "Bill was updated concurrently, please retry") from last_exc


# ============================================================
# Loading
# ============================================================
def get_bill_for_update(db: Session, case_id: str) -> Optional[Bill]:
    return (db.query(Bill).filter(Bill.case_id == str(case_id)).
            populate_existing().with_for_update().first())


def get_bill_by_id_for_update(db: Session, bill_id: int) -> Bill:
    bill = (db.query(Bill).filter(Bill.id == int(bill_id)).populate_existing().
            with_for_update().first())
    if not bill:
        raise MissingDependencyError("Bill not found")
    return bill


def _new_bill(db: Session, *, case_id: str, patient_id: int, hospital_id: int,
              doctor_id: Optional[int]) -> Bill:
    if not patient_id or not hospital_id:
        raise MissingDependencyError(
            "Patient and hospital are required to open a bill")
    now = now_local()
    bill = Bill(
        case_id=str(case_id),
        patient_id=int(patient_id),
        hospital_id=int(hospital_id),
        doctor_id=int(doctor_id) if doctor_id else None,
        invoice_number=next_invoice_number(db, int(hospital_id), at=now),
        invoice_date=now,
        status=BillStatus.PENDING,
        mode=BillMode.CASH,
        is_live=False,
    )
    db.add(bill)
    db.flush()
    logger.info("Opened bill %s for case %s", bill.invoice_number, case_id)
    return bill


def _row_from_charge(ch: ChargeLine, seq: int) -> BillServiceLine:
    return BillServiceLine(
        seq=seq,
        catalog_entry_id=ch.catalog_entry_id,
        category=ch.category,
        rate_key=ch.rate_key,
        department_id=ch.department_id,
        quantity=D(ch.quantity),
        rate=money2(ch.rate),
        amount=ch.amount,
        details=dict(ch.details or {}),
        line_key=ch.line_key,
        billed_date=ch.billed_date,
        is_recurring=bool(ch.is_recurring),
        is_manual=bool(ch.is_manual),
    )


def _next_seq(bill: Bill) -> int:
    return max((int(s.seq or 0) for s in bill.services), default=0) + 1


# ============================================================
# Merge
# ============================================================
@dataclass
class MergeResult:
    bill: Bill
    added: int = 0
    skipped: int = 0


def merge_charges(
    db: Session,
    *,
    case_id: str,
    lines: Sequence[ChargeLine],
    patient_id: Optional[int] = None,
    hospital_id: Optional[int] = None,
    doctor_id: Optional[int] = None,
) -> MergeResult:
    """
    Append charge lines to the case's bill (creating it on first charge).

    A line whose line_key is already on the bill, or repeats earlier in the
    batch, is skipped silently. Totals are recomputed from the merged state.
    """
    bill = get_bill_for_update(db, case_id)
    if bill is None:
        if not lines:
            raise BillingValidationError("Cannot open a bill without charges")
        bill = _new_bill(db,
                         case_id=case_id,
                         patient_id=patient_id,
                         hospital_id=hospital_id,
                         doctor_id=doctor_id)
    elif doctor_id and not bill.doctor_id:
        bill.doctor_id = int(doctor_id)

    seen = {s.line_key for s in bill.services if s.line_key}
    seq = _next_seq(bill)
    added = skipped = 0

    for ch in lines:
        if ch.line_key and ch.line_key in seen:
            skipped += 1
            continue
        bill.services.append(_row_from_charge(ch, seq))
        if ch.line_key:
            seen.add(ch.line_key)
        seq += 1
        added += 1

    recalc_bill(bill)
    db.flush()

    if skipped:
        logger.debug("Case %s: %s duplicate line(s) skipped", case_id, skipped)
    return MergeResult(bill=bill, added=added, skipped=skipped)


def open_live_bill(
    db: Session,
    *,
    case_id: str,
    patient_id: int,
    hospital_id: int,
    doctor_id: Optional[int] = None,
) -> Bill:
    """Anchor for the nightly room accumulator; may hold no lines yet."""
    bill = get_bill_for_update(db, case_id)
    if bill is None:
        bill = _new_bill(db,
                         case_id=case_id,
                         patient_id=patient_id,
                         hospital_id=hospital_id,
                         doctor_id=doctor_id)
    bill.is_live = True
    recalc_bill(bill)
    db.flush()
    return bill


# ============================================================
# Walk-in itemized bill
# ============================================================
def create_itemized_bill(
    db: Session,
    *,
    case_id: str,
    patient_id: int,
    hospital_id: int,
    items: Iterable[Dict[str, Any]],
    doctor_id: Optional[int] = None,
    mode: BillMode = BillMode.CASH,
    initial_payment: Optional[Dict[str, Any]] = None,
    recorded_by: Optional[str] = None,
) -> Bill:
    """
    Bill catalog items for a case: validates the patient and the case's
    appointment, prices every item through the resolver and merges them into
    the case's bill (created if absent). Optional first payment.
    """
    from carebill.services.billing_payment_service import post_payment

    items = list(items or [])
    if not items:
        raise BillingValidationError("At least one service is required")

    def _work(db: Session) -> Bill:
        patient = db.get(Patient, int(patient_id))
        if not patient:
            raise MissingDependencyError("Patient not found")

        appt = (db.query(Appointment).filter(
            Appointment.case_id == str(case_id)).order_by(
                Appointment.id.asc()).first())
        if not appt:
            raise MissingDependencyError(
                f"No appointment found for case {case_id}")
        if int(appt.patient_id) != int(patient.id):
            raise BillingValidationError(
                "Appointment does not belong to this patient")

        resolver = RateResolver(db, hospital_id)
        payer = payer_context_for_case(db, case_id)
        charges = [
            build_catalog_charge(
                it.get("category"),
                it.get("quantity", 1),
                resolver,
                payer,
                department_id=it.get("department_id"),
                details=it.get("details"),
            ) for it in items
        ]

        res = merge_charges(
            db,
            case_id=case_id,
            lines=charges,
            patient_id=patient.id,
            hospital_id=hospital_id,
            doctor_id=doctor_id or appt.doctor_id,
        )
        bill = res.bill
        bill.mode = mode

        if initial_payment and D(initial_payment.get("amount")) > 0:
            post_payment(
                bill,
                amount=initial_payment.get("amount"),
                mode=initial_payment.get("mode"),
                reference=initial_payment.get("reference"),
                recorded_by=recorded_by,
            )
        db.flush()
        return bill

    return run_atomic(db, _work)


# ============================================================
# Wholesale edit / ad hoc expense
# ============================================================
def _edited_charge(item: Dict[str, Any]) -> ChargeLine:
    category = str(item.get("category") or "").strip()
    if not category:
        raise BillingValidationError("Service category is required")

    qty = D(item.get("quantity", 1))
    rate = money2(item.get("rate"))
    if qty < 0 or rate < 0:
        raise BillingValidationError(
            f"Quantity and rate for '{category}' cannot be negative")

    billed_date: Optional[date] = item.get("billed_date")
    is_recurring = bool(item.get("is_recurring"))
    line_key = item.get("line_key") or None
    if is_recurring:
        if not billed_date:
            raise BillingValidationError(
                f"Recurring line '{category}' needs a billed date")
        line_key = recurring_line_key(category, billed_date)

    details = dict(item.get("details") or {})
    details["totalCharge"] = float(line_amount(qty, rate))
    if billed_date:
        details["billedDate"] = billed_date.isoformat()

    return ChargeLine(
        category=category,
        quantity=qty,
        rate=rate,
        rate_key=item.get("rate_key") or None,
        department_id=item.get("department_id"),
        catalog_entry_id=item.get("catalog_entry_id"),
        details=details,
        line_key=line_key,
        billed_date=billed_date,
        is_recurring=is_recurring,
        is_manual=bool(item.get("is_manual")),
    )


def replace_services(db: Session, bill_id: int,
                     items: Iterable[Dict[str, Any]]) -> Bill:
    """
    Replace a bill's service list as given (rates taken verbatim) and
    recompute. Discount and payments are kept.
    """
    charges = [_edited_charge(it) for it in (items or [])]

    keys: List[str] = [c.line_key for c in charges if c.line_key]
    if len(keys) != len(set(keys)):
        dupes = sorted({k for k in keys if keys.count(k) > 1})
        raise BillingValidationError("Duplicate service lines: " +
                                     ", ".join(dupes))

    def _work(db: Session) -> Bill:
        bill = get_bill_by_id_for_update(db, bill_id)
        bill.services.clear()
        # old keys must be gone before the same keys are inserted again
        db.flush()
        for i, ch in enumerate(charges, start=1):
            bill.services.append(_row_from_charge(ch, i))
        recalc_bill(bill)
        db.flush()
        return bill

    bill = run_atomic(db, _work)
    logger.info("Bill %s services replaced (%s lines)", bill_id, len(charges))
    return bill


def add_expense_line(
    db: Session,
    bill_id: int,
    *,
    description: str,
    amount,
    quantity=1,
    details: Optional[Dict[str, Any]] = None,
) -> Bill:
    charge = build_expense_charge(description, amount, quantity, details)

    def _work(db: Session) -> Bill:
        bill = get_bill_by_id_for_update(db, bill_id)
        bill.services.append(_row_from_charge(charge, _next_seq(bill)))
        recalc_bill(bill)
        db.flush()
        return bill

    return run_atomic(db, _work)


# ============================================================
# Read side
# ============================================================
def _line_view(s: BillServiceLine) -> Dict[str, Any]:
    return {
        "id": s.id,
        "seq": s.seq,
        "category": s.category,
        "rate_key": s.rate_key,
        "department_id": s.department_id,
        "department": s.department.name if s.department else None,
        "quantity": D(s.quantity),
        "rate": money2(s.rate),
        "amount": money2(s.amount),
        "details": s.details or {},
        "line_key": s.line_key,
        "billed_date": s.billed_date,
        "is_recurring": bool(s.is_recurring),
        "is_manual": bool(s.is_manual),
    }


def bill_view(bill: Bill) -> Dict[str, Any]:
    patient = bill.patient
    doctor = bill.doctor
    return {
        "id": bill.id,
        "case_id": bill.case_id,
        "hospital_id": bill.hospital_id,
        "invoice_number": bill.invoice_number,
        "invoice_date": bill.invoice_date,
        "patient": {
            "id": patient.id,
            "name": patient.name,
            "phone": patient.phone,
        } if patient else None,
        "doctor": {
            "id": doctor.id,
            "name": doctor.name,
            "specialization": doctor.specialization,
        } if doctor else None,
        "services": [_line_view(s) for s in bill.services],
        "gross_amount": money2(bill.gross_amount),
        "discount": {
            "type": bill.discount_type.value if bill.discount_type else None,
            "value": money2(bill.discount_value),
            "amount": money2(bill.discount_amount),
            "reason": bill.discount_reason,
            "applied_by": bill.discount_applied_by,
            "applied_at": bill.discount_applied_at,
        } if bill.discount_type else None,
        "net_amount": money2(bill.net_amount),
        "total_amount": money2(bill.total_amount),
        "paid_amount": money2(bill.paid_amount),
        "balance": money2(bill.balance),
        "outstanding": money2(bill.outstanding),
        "payments": [{
            "id": p.id,
            "amount": money2(p.amount),
            "mode": p.mode.value if p.mode else None,
            "reference": p.reference,
            "paid_at": p.paid_at,
            "recorded_by": p.recorded_by,
        } for p in bill.payments],
        "status": bill.status.value if bill.status else None,
        "mode": bill.mode.value if bill.mode else None,
        "is_live": bool(bill.is_live),
        "last_billed_at": bill.last_billed_at,
        "created_at": bill.created_at,
        "updated_at": bill.updated_at,
    }


def get_bill_view(db: Session,
                  *,
                  bill_id: Optional[int] = None,
                  case_id: Optional[str] = None) -> Dict[str, Any]:
    q = db.query(Bill)
    if bill_id is not None:
        q = q.filter(Bill.id == int(bill_id))
    elif case_id is not None:
        q = q.filter(Bill.case_id == str(case_id))
    else:
        raise BillingValidationError("bill_id or case_id is required")
    bill = q.first()
    if not bill:
        raise MissingDependencyError("Bill not found")
    return bill_view(bill)


def list_bills(
    db: Session,
    *,
    hospital_id: int,
    q: Optional[str] = None,
    status: Optional[BillStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    page = max(1, int(page or 1))
    limit = min(max(1, int(limit or 20)), 200)

    qry = (db.query(Bill).outerjoin(Patient, Patient.id == Bill.patient_id).
           filter(Bill.hospital_id == int(hospital_id)))
    if status:
        qry = qry.filter(Bill.status == status)
    if q and q.strip():
        like = f"%{q.strip()}%"
        qry = qry.filter(
            or_(
                Bill.invoice_number.ilike(like),
                Bill.case_id.ilike(like),
                Patient.name.ilike(like),
                Patient.phone.ilike(like),
            ))

    total = qry.count()
    rows = (qry.order_by(Bill.id.desc()).offset(
        (page - 1) * limit).limit(limit).all())

    return {
        "items": [{
            "id": b.id,
            "case_id": b.case_id,
            "invoice_number": b.invoice_number,
            "invoice_date": b.invoice_date,
            "patient_name": b.patient.name if b.patient else None,
            "net_amount": money2(b.net_amount),
            "paid_amount": money2(b.paid_amount),
            "outstanding": money2(b.outstanding),
            "status": b.status.value if b.status else None,
            "is_live": bool(b.is_live),
        } for b in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }
