# FILE: carebill/services/billing_workflows.py
"""
Clinical actions that raise charges. Each one changes clinical state and
merges its charge lines in the same transaction (complete_and_bill), so a
missing rate or a bad date aborts the action itself.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from carebill.models.hospital import Department
from carebill.models.ipd import Admission, Bed, MedicationRecord
from carebill.models.opd import Appointment, Consultation
from carebill.services.billing_charges import (
    ChargeLine,
    build_bed_charge,
    build_consultation_charge,
    build_medication_charge,
)
from carebill.services.billing_errors import (
    BillingStateError,
    BillingValidationError,
    MissingDependencyError,
)
from carebill.services.billing_ledger import (
    MergeResult,
    bill_view,
    merge_charges,
    open_live_bill,
    run_atomic,
)
from carebill.services.rate_resolver import RateResolver, payer_context_for_case
from carebill.utils.timezone import now_local, to_local_naive

logger = logging.getLogger(__name__)

CONSULT_ACTIONS = ("complete", "final", "refer")
MED_STATUSES = ("Scheduled", "Rescheduled", "Given")


@dataclass
class BillingStep:
    """What a clinical action hands to the ledger."""
    case_id: str
    patient_id: int
    hospital_id: int
    lines: List[ChargeLine] = field(default_factory=list)
    doctor_id: Optional[int] = None
    close_live: bool = False
    result: Dict[str, Any] = field(default_factory=dict)


def complete_and_bill(
    db: Session, step: Callable[[Session], BillingStep]
) -> Tuple[BillingStep, Optional[MergeResult]]:
    """
    Run a clinical state change and merge its charges as one unit of work:
    both commit or neither does.
    """

    def _work(db: Session):
        st = step(db)
        if not st.lines and not st.close_live:
            db.flush()
            return st, None

        res = merge_charges(
            db,
            case_id=st.case_id,
            lines=st.lines,
            patient_id=st.patient_id,
            hospital_id=st.hospital_id,
            doctor_id=st.doctor_id,
        )
        if st.close_live:
            res.bill.is_live = False
        db.flush()
        return st, res

    return run_atomic(db, _work)


def _out(st: BillingStep, res: Optional[MergeResult]) -> Dict[str, Any]:
    out = dict(st.result)
    out["charges_added"] = res.added if res else 0
    out["bill"] = bill_view(res.bill) if res else None
    return out


# ------------------------------------------------------------
# OPD consultation
# ------------------------------------------------------------
def finalize_consultation(
    db: Session,
    consultation_id: int,
    *,
    action: str,
    consultation_data: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    complete / final -> consultation completed and "Doctor Consultation" billed
                        (from open, or from referred once the referral is seen)
    refer            -> consultation referred, nothing billed yet
    """
    action = (action or "").strip().lower()
    if action not in CONSULT_ACTIONS:
        raise BillingValidationError(f"Invalid action '{action}'")

    def _step(db: Session) -> BillingStep:
        c = (db.query(Consultation).filter(
            Consultation.id == int(consultation_id)).with_for_update().first())
        if not c:
            raise MissingDependencyError("Consultation not found")
        # a referral stays billable until the referred visit completes it
        allowed = ("open", ) if action == "refer" else ("open", "referred")
        if c.status not in allowed:
            raise BillingStateError(f"Consultation is already {c.status}")

        dept = db.get(Department, int(c.department_id)) if c.department_id else None
        if c.department_id and (not dept or dept.hospital_id != c.hospital_id):
            raise MissingDependencyError("Department not found in this hospital")

        if consultation_data is not None:
            c.consultation_data = dict(consultation_data)

        st = BillingStep(case_id=c.case_id,
                         patient_id=c.patient_id,
                         hospital_id=c.hospital_id,
                         doctor_id=c.doctor_id)

        if action == "refer":
            c.status = "referred"
        else:
            c.status = "completed"
            c.completed_at = now_local()
            st.lines.append(
                build_consultation_charge(
                    c,
                    RateResolver(db, c.hospital_id),
                    payer_context_for_case(db, c.case_id),
                    doctor_name=c.doctor.name if c.doctor else None,
                    department_name=dept.name if dept else None,
                ))

        if c.appointment_id:
            appt = db.get(Appointment, int(c.appointment_id))
            if appt:
                appt.status = "Completed"

        st.result = {
            "consultation_id": c.id,
            "case_id": c.case_id,
            "status": c.status,
        }
        return st

    st, res = complete_and_bill(db, _step)
    logger.info("Consultation %s %s (case %s)", consultation_id,
                st.result["status"], st.case_id)
    return _out(st, res)


# ------------------------------------------------------------
# IPD medication
# ------------------------------------------------------------
def update_medication_status(
    db: Session,
    record_id: int,
    *,
    status: str,
    given_by: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    new_status = next(
        (s for s in MED_STATUSES if s.lower() == (status or "").strip().lower()),
        None)
    if not new_status:
        raise BillingValidationError(
            f"Invalid medication status '{status}' "
            f"(allowed: {', '.join(MED_STATUSES)})")

    def _step(db: Session) -> BillingStep:
        rec = (db.query(MedicationRecord).filter(
            MedicationRecord.id == int(record_id)).with_for_update().first())
        if not rec:
            raise MissingDependencyError("Medication record not found")
        if rec.status == "Given" and new_status != "Given":
            raise BillingStateError("Medication already given")

        adm = db.query(Admission).filter(
            Admission.case_id == rec.case_id).first()

        rec.status = new_status
        if notes is not None:
            rec.notes = notes
        st = BillingStep(case_id=rec.case_id,
                         patient_id=rec.patient_id,
                         hospital_id=rec.hospital_id,
                         doctor_id=adm.doctor_id if adm else None)

        if new_status == "Given":
            rec.given_at = rec.given_at or now_local()
            if given_by:
                rec.given_by = given_by
            st.lines.append(
                build_medication_charge(
                    rec,
                    RateResolver(db, rec.hospital_id),
                    payer_context_for_case(db, rec.case_id),
                ))

        st.result = {
            "medication_record_id": rec.id,
            "case_id": rec.case_id,
            "status": rec.status,
        }
        return st

    st, res = complete_and_bill(db, _step)
    logger.info("Medication record %s -> %s (case %s)", record_id,
                st.result["status"], st.case_id)
    return _out(st, res)


# ------------------------------------------------------------
# Admission / discharge
# ------------------------------------------------------------
def _admission_for_update(db: Session, case_id: str) -> Admission:
    adm = (db.query(Admission).filter(
        Admission.case_id == str(case_id)).with_for_update().first())
    if not adm:
        raise MissingDependencyError(f"No admission found for case {case_id}")
    return adm


def admit_to_bed(
    db: Session,
    case_id: str,
    *,
    bed_id: int,
    admitted_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Occupy the bed and open the live bill the nightly job accrues on."""
    at = to_local_naive(admitted_at) or now_local()

    def _work(db: Session) -> Dict[str, Any]:
        adm = _admission_for_update(db, case_id)
        if adm.status in ("Admitted", "Discharged"):
            raise BillingStateError(f"Case is already {adm.status.lower()}")

        bed = db.query(Bed).filter(Bed.id == int(bed_id)).with_for_update().first()
        if not bed or bed.hospital_id != adm.hospital_id:
            raise MissingDependencyError("Bed not found in this hospital")
        if bed.status != "Available":
            raise BillingStateError(f"Bed {bed.bed_number} is {bed.status}")

        bed.status = "Occupied"
        bed.assigned_patient_id = adm.patient_id
        bed.assigned_at = at
        bed.discharged_at = None

        adm.bed_id = bed.id
        adm.status = "Admitted"
        adm.admitted_at = at
        adm.admission_date = at.date()

        bill = open_live_bill(db,
                              case_id=adm.case_id,
                              patient_id=adm.patient_id,
                              hospital_id=adm.hospital_id,
                              doctor_id=adm.doctor_id)
        return {
            "case_id": adm.case_id,
            "bed_id": bed.id,
            "admitted_at": at,
            "bill": bill_view(bill),
        }

    out = run_atomic(db, _work)
    logger.info("Case %s admitted to bed %s", case_id, bed_id)
    return out


def discharge_case(
    db: Session,
    case_id: str,
    *,
    discharged_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Lump room charge (assignment -> discharge), bed released, bill no longer
    live. Aborts as a whole on a missing bed/room or inverted dates.
    """
    at = to_local_naive(discharged_at) or now_local()

    def _step(db: Session) -> BillingStep:
        adm = _admission_for_update(db, case_id)
        if adm.status != "Admitted":
            raise BillingStateError("Case is not currently admitted")

        bed = (db.query(Bed).filter(Bed.id == int(adm.bed_id)).with_for_update().
               first()) if adm.bed_id else None
        if bed is None:
            raise MissingDependencyError("Bed not found for this admission")
        if bed.status != "Occupied":
            raise BillingStateError("Bed is not currently occupied")

        charge = build_bed_charge(bed, bed.room, bed.assigned_at, at)

        bed.status = "Available"
        bed.assigned_patient_id = None
        bed.discharged_at = at
        adm.status = "Discharged"
        adm.discharged_at = at

        return BillingStep(
            case_id=adm.case_id,
            patient_id=adm.patient_id,
            hospital_id=adm.hospital_id,
            doctor_id=adm.doctor_id,
            lines=[charge],
            close_live=True,
            result={
                "case_id": adm.case_id,
                "bed_id": bed.id,
                "discharged_at": at,
                "days_occupied": int(charge.quantity),
            },
        )

    st, res = complete_and_bill(db, _step)
    logger.info("Case %s discharged (%s day(s))", case_id,
                st.result["days_occupied"])
    return _out(st, res)
