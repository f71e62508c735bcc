# FILE: carebill/api/routes_billing.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from carebill.api.deps import current_actor, get_db
from carebill.api.response import ok
from carebill.models.billing import BillStatus
from carebill.schemas.billing import (
    DiscountIn,
    ExpenseIn,
    ItemizedBillCreate,
    PaymentIn,
    RoomBillingRunIn,
    ServicesReplace,
)
from carebill.services.billing_insurance import recalculate_for_insurance_change
from carebill.services.billing_ledger import (
    add_expense_line,
    bill_view,
    create_itemized_bill,
    get_bill_view,
    list_bills,
    replace_services,
)
from carebill.services.billing_payment_service import add_payment, apply_discount
from carebill.services.billing_room_daily import accumulate_room_charges

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.post("/bills")
def create_bill(
        payload: ItemizedBillCreate,
        db: Session = Depends(get_db),
        actor: Optional[str] = Depends(current_actor),
):
    bill = create_itemized_bill(
        db,
        case_id=payload.case_id,
        patient_id=payload.patient_id,
        hospital_id=payload.hospital_id,
        doctor_id=payload.doctor_id,
        mode=payload.mode,
        items=[s.model_dump() for s in payload.services],
        initial_payment=payload.payment.model_dump() if payload.payment else None,
        recorded_by=actor,
    )
    return ok(bill_view(bill), status_code=201)


@router.get("/bills")
def get_bills(
        hospital_id: int = Query(..., gt=0),
        q: Optional[str] = Query(None),
        status: Optional[BillStatus] = Query(None),
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=200),
        db: Session = Depends(get_db),
):
    out = list_bills(db,
                     hospital_id=hospital_id,
                     q=q,
                     status=status,
                     page=page,
                     limit=limit)
    return ok(out["items"],
              meta={
                  "total": out["total"],
                  "page": out["page"],
                  "limit": out["limit"],
              })


@router.get("/bills/{bill_id}")
def get_bill(bill_id: int, db: Session = Depends(get_db)):
    return ok(get_bill_view(db, bill_id=bill_id))


@router.get("/cases/{case_id}/bill")
def get_case_bill(case_id: str, db: Session = Depends(get_db)):
    return ok(get_bill_view(db, case_id=case_id))


@router.put("/bills/{bill_id}/services")
def put_services(bill_id: int,
                 payload: ServicesReplace,
                 db: Session = Depends(get_db)):
    bill = replace_services(db, bill_id,
                            [s.model_dump() for s in payload.services])
    return ok(bill_view(bill))


@router.post("/bills/{bill_id}/expenses")
def post_expense(bill_id: int, payload: ExpenseIn,
                 db: Session = Depends(get_db)):
    bill = add_expense_line(
        db,
        bill_id,
        description=payload.description,
        amount=payload.amount,
        quantity=payload.quantity,
        details=payload.details,
    )
    return ok(bill_view(bill))


@router.post("/bills/{bill_id}/discount")
def post_discount(
        bill_id: int,
        payload: DiscountIn,
        db: Session = Depends(get_db),
        actor: Optional[str] = Depends(current_actor),
):
    bill = apply_discount(
        db,
        bill_id,
        discount_type=payload.type,
        value=payload.value,
        reason=payload.reason,
        applied_by=actor,
    )
    return ok(bill_view(bill))


@router.post("/bills/{bill_id}/payments")
def post_payment(
        bill_id: int,
        payload: PaymentIn,
        db: Session = Depends(get_db),
        actor: Optional[str] = Depends(current_actor),
):
    bill = add_payment(
        db,
        bill_id,
        amount=payload.amount,
        mode=payload.mode,
        reference=payload.reference,
        recorded_by=actor,
    )
    return ok(bill_view(bill), status_code=201)


@router.post("/cases/{case_id}/recalculate")
def recalculate(case_id: str, db: Session = Depends(get_db)):
    return ok(recalculate_for_insurance_change(db, case_id))


@router.post("/jobs/room-charges")
def run_room_charges(
        payload: Optional[RoomBillingRunIn] = None,
        db: Session = Depends(get_db),
):
    include_today = payload.include_today if payload else None
    summary = accumulate_room_charges(db, include_today=include_today)
    return ok(summary.as_dict())
