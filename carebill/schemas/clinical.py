# FILE: carebill/schemas/clinical.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field


class ConsultationFinalizeIn(BaseModel):
    action: Literal["complete", "final", "refer"]
    consultation_data: Optional[Dict[str, Any]] = None


class MedicationStatusIn(BaseModel):
    status: Literal["Scheduled", "Rescheduled", "Given"]
    given_by: Optional[str] = Field(None, max_length=120)
    notes: Optional[str] = Field(None, max_length=255)


class AdmitIn(BaseModel):
    bed_id: int = Field(..., gt=0)
    admitted_at: Optional[datetime] = None


class DischargeIn(BaseModel):
    discharged_at: Optional[datetime] = None


class InsuranceStatusIn(BaseModel):
    approval_status: Literal["pending", "approved", "rejected"]
    insurer_id: Optional[int] = None
    amount_approved: Optional[Decimal] = None
    policy_number: Optional[str] = Field(None, max_length=64)
