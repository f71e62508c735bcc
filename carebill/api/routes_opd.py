# FILE: carebill/api/routes_opd.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from carebill.api.deps import get_db
from carebill.api.response import ok
from carebill.schemas.clinical import ConsultationFinalizeIn
from carebill.services.billing_workflows import finalize_consultation

router = APIRouter(prefix="/opd", tags=["OPD"])


@router.post("/consultations/{consultation_id}/finalize")
def finalize(consultation_id: int,
             payload: ConsultationFinalizeIn,
             db: Session = Depends(get_db)):
    out = finalize_consultation(
        db,
        consultation_id,
        action=payload.action,
        consultation_data=payload.consultation_data,
    )
    return ok(out)
