# FILE: carebill/api/routes_ipd.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from carebill.api.deps import current_actor, get_db
from carebill.api.response import ok
from carebill.schemas.clinical import (
    AdmitIn,
    DischargeIn,
    InsuranceStatusIn,
    MedicationStatusIn,
)
from carebill.services.billing_insurance import update_insurance_status
from carebill.services.billing_workflows import (
    admit_to_bed,
    discharge_case,
    update_medication_status,
)

router = APIRouter(prefix="/ipd", tags=["IPD"])


@router.patch("/medications/{record_id}/status")
def medication_status(
        record_id: int,
        payload: MedicationStatusIn,
        db: Session = Depends(get_db),
        actor: Optional[str] = Depends(current_actor),
):
    out = update_medication_status(
        db,
        record_id,
        status=payload.status,
        given_by=payload.given_by or actor,
        notes=payload.notes,
    )
    return ok(out)


@router.post("/cases/{case_id}/admit")
def admit(case_id: str, payload: AdmitIn, db: Session = Depends(get_db)):
    out = admit_to_bed(db,
                       case_id,
                       bed_id=payload.bed_id,
                       admitted_at=payload.admitted_at)
    return ok(out, status_code=201)


@router.post("/cases/{case_id}/discharge")
def discharge(
        case_id: str,
        payload: Optional[DischargeIn] = None,
        db: Session = Depends(get_db),
):
    out = discharge_case(db,
                         case_id,
                         discharged_at=payload.discharged_at if payload else None)
    return ok(out)


@router.patch("/cases/{case_id}/insurance")
def insurance_status(case_id: str,
                     payload: InsuranceStatusIn,
                     db: Session = Depends(get_db)):
    out = update_insurance_status(
        db,
        case_id,
        approval_status=payload.approval_status,
        insurer_id=payload.insurer_id,
        amount_approved=payload.amount_approved,
        policy_number=payload.policy_number,
    )
    return ok(out)
