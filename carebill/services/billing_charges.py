# FILE: carebill/services/billing_charges.py
"""
Charge builders: turn one clinical / administrative outcome into normalized
service lines. Nothing here reads or writes a Bill.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from carebill.services.billing_errors import (
    BillingValidationError,
    DateInconsistencyError,
    MissingDependencyError,
    MissingRateError,
)
from carebill.services.billing_math import D, line_amount, money2
from carebill.services.rate_resolver import (
    PayerContext,
    RateResolver,
    ResolvedRate,
)

CONSULTATION_CATEGORY = "Doctor Consultation"
MEDICATION_CATEGORY = "Medication"
DAILY_ROOM_CATEGORY = "Room Charges daily"

SECONDS_PER_DAY = 24 * 3600


@dataclass
class ChargeLine:
    category: str
    quantity: Decimal
    rate: Decimal
    rate_key: Optional[str] = None
    department_id: Optional[int] = None
    catalog_entry_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)
    line_key: Optional[str] = None
    billed_date: Optional[date] = None
    is_recurring: bool = False
    is_manual: bool = False

    @property
    def amount(self) -> Decimal:
        return line_amount(self.quantity, self.rate)


def _num(x) -> float:
    # JSON detail bags hold plain numbers
    return float(money2(x))


def recurring_line_key(category: str, day: date) -> str:
    return f"{category}:{day.isoformat()}"


def bed_daily_rate(bed) -> Optional[Decimal]:
    """The bed's own daily rate, or None when it was never configured."""
    if bed is None or bed.daily_rate is None:
        return None
    rate = money2(bed.daily_rate)
    return rate if rate > 0 else None


def occupied_days(assigned_at: datetime, discharged_at: datetime) -> int:
    """Whole days of occupancy, any started day counts (ceil)."""
    seconds = (discharged_at - assigned_at).total_seconds()
    if seconds < 0:
        raise DateInconsistencyError(
            f"Discharge time {discharged_at.isoformat()} is before bed assignment "
            f"{assigned_at.isoformat()}")
    return int(math.ceil(seconds / SECONDS_PER_DAY))


# ------------------------------------------------------------
# Consultation
# ------------------------------------------------------------
def build_consultation_charge(
    consultation,
    resolver: RateResolver,
    payer: PayerContext,
    *,
    doctor_name: Optional[str] = None,
    department_name: Optional[str] = None,
) -> ChargeLine:
    if consultation is None:
        raise MissingDependencyError("Consultation not found")
    if not consultation.department_id:
        raise MissingDependencyError(
            f"Consultation {consultation.id} has no department")

    dept_id = int(consultation.department_id)
    resolved = resolver.resolve(CONSULTATION_CATEGORY, payer, dept_id)
    qty = Decimal("1")

    return ChargeLine(
        category=CONSULTATION_CATEGORY,
        quantity=qty,
        rate=resolved.rate,
        rate_key=CONSULTATION_CATEGORY,
        department_id=dept_id,
        catalog_entry_id=resolved.entry_id,
        line_key=f"CONSULT:{consultation.id}",
        details={
            "consultationId": consultation.id,
            "department": department_name,
            "departmentId": dept_id,
            "doctor": doctor_name,
            "consultationData": consultation.consultation_data or {},
            "totalCharge": _num(line_amount(qty, resolved.rate)),
            "insuranceCovered": resolved.insurance_covered,
        },
    )


# ------------------------------------------------------------
# Medication
# ------------------------------------------------------------
def build_medication_charge(record, resolver: RateResolver,
                            payer: PayerContext) -> ChargeLine:
    if record is None:
        raise MissingDependencyError("Medication record not found")

    resolved = resolver.resolve(MEDICATION_CATEGORY, payer)
    qty = Decimal("1")

    return ChargeLine(
        category=MEDICATION_CATEGORY,
        quantity=qty,
        rate=resolved.rate,
        rate_key=MEDICATION_CATEGORY,
        catalog_entry_id=resolved.entry_id,
        line_key=f"MED:{record.id}",
        details={
            "medicationRecordId": record.id,
            "medication": record.medication,
            "dose": record.dose,
            "route": record.route,
            "time": record.time,
            "givenBy": record.given_by,
            "notes": record.notes,
            "totalCharge": _num(line_amount(qty, resolved.rate)),
            "insuranceCovered": resolved.insurance_covered,
        },
    )


# ------------------------------------------------------------
# Bed / room
# ------------------------------------------------------------
def build_bed_charge(bed, room, assigned_at: Optional[datetime],
                     discharged_at: datetime) -> ChargeLine:
    """
    Lump room charge at discharge: assignment -> discharge at the bed's own
    daily rate. Insurer pricing only reaches this line via re-resolution.
    """
    if bed is None:
        raise MissingDependencyError("Bed not found")
    if room is None:
        raise MissingDependencyError(f"Room not found for bed {bed.bed_number}")
    if assigned_at is None:
        raise MissingDependencyError(
            f"Bed {bed.bed_number} has no assignment date")
    days = occupied_days(assigned_at, discharged_at)
    rate = bed_daily_rate(bed)
    if rate is None:
        raise MissingRateError(room.name)
    qty = Decimal(days)

    return ChargeLine(
        category=room.name,
        quantity=qty,
        rate=rate,
        rate_key=room.room_type,
        department_id=room.department_id,
        line_key=f"DISCHARGE:{bed.id}:{assigned_at.strftime('%Y%m%d%H%M%S')}",
        details={
            "bedNumber": bed.bed_number,
            "bedType": bed.bed_type or "Not Specified",
            "roomType": room.room_type,
            "features": bed.features or {},
            "daysOccupied": days,
            "totalCharge": _num(line_amount(qty, rate)),
            "assignedAt": assigned_at.isoformat(),
            "dischargedAt": discharged_at.isoformat(),
        },
    )


def build_daily_room_charge(bed, room, day: date,
                            resolved: ResolvedRate) -> ChargeLine:
    """One recurring room line for one calendar day (idempotent on the date)."""
    qty = Decimal("1")
    return ChargeLine(
        category=DAILY_ROOM_CATEGORY,
        quantity=qty,
        rate=resolved.rate,
        rate_key=room.room_type,
        department_id=room.department_id,
        catalog_entry_id=resolved.entry_id,
        line_key=recurring_line_key(DAILY_ROOM_CATEGORY, day),
        billed_date=day,
        is_recurring=True,
        details={
            "bedNumber": bed.bed_number,
            "daysOccupied": 1,
            "totalCharge": _num(line_amount(qty, resolved.rate)),
            "billedDate": day.isoformat(),
            "bedType": room.room_type or "Not Specified",
            "features": bed.features or {},
            "roomDetails": resolved.additional_details or {},
            "rateSource": resolved.scope,
            "insuranceCovered": resolved.insurance_covered,
        },
    )


# ------------------------------------------------------------
# Walk-in / manual
# ------------------------------------------------------------
def build_catalog_charge(
    category: str,
    quantity,
    resolver: RateResolver,
    payer: PayerContext,
    *,
    department_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
) -> ChargeLine:
    qty = D(quantity)
    if qty <= 0:
        raise BillingValidationError(f"Quantity for '{category}' must be > 0")

    resolved = resolver.resolve(category, payer, department_id)
    bag = dict(details or {})
    bag.update({
        "totalCharge": _num(line_amount(qty, resolved.rate)),
        "insuranceCovered": resolved.insurance_covered,
    })
    return ChargeLine(
        category=resolved.category,
        quantity=qty,
        rate=resolved.rate,
        rate_key=resolved.category,
        department_id=department_id,
        catalog_entry_id=resolved.entry_id,
        details=bag,
    )


def build_expense_charge(description: str,
                         amount,
                         quantity=1,
                         details: Optional[Dict[str, Any]] = None) -> ChargeLine:
    """Ad hoc line priced by hand; never re-resolved."""
    desc = (description or "").strip()
    if not desc:
        raise BillingValidationError("Expense description is required")
    qty = D(quantity)
    rate = money2(amount)
    if qty <= 0:
        raise BillingValidationError("Expense quantity must be > 0")
    if rate < 0:
        raise BillingValidationError("Expense amount cannot be negative")

    bag = dict(details or {})
    bag["totalCharge"] = _num(line_amount(qty, rate))
    return ChargeLine(
        category=desc[:120],
        quantity=qty,
        rate=rate,
        details=bag,
        is_manual=True,
    )
