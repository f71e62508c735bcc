"""Charge builders produce normalized lines and refuse to guess."""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from carebill.services.billing_charges import (
    CONSULTATION_CATEGORY,
    DAILY_ROOM_CATEGORY,
    build_bed_charge,
    build_consultation_charge,
    build_daily_room_charge,
    build_expense_charge,
    occupied_days,
)
from carebill.services.billing_errors import (
    BillingValidationError,
    DateInconsistencyError,
    MissingDependencyError,
    MissingRateError,
)
from carebill.services.rate_resolver import HOSPITAL_PAYER, RateResolver, ResolvedRate


def _bed(**kw):
    base = dict(id=7, bed_number="B-7", bed_type="ICU Bed", features={"o2": True},
                daily_rate=Decimal("1200"))
    base.update(kw)
    return SimpleNamespace(**base)


ROOM = SimpleNamespace(name="ICU West", room_type="ICU", department_id=None)


class TestOccupiedDays:
    def test_partial_day_counts(self):
        assert occupied_days(datetime(2025, 1, 1, 10), datetime(2025, 1, 3, 11)) == 3

    def test_exact_days(self):
        assert occupied_days(datetime(2025, 1, 1, 10), datetime(2025, 1, 3, 10)) == 2

    def test_same_instant_is_zero(self):
        t = datetime(2025, 1, 1, 10)
        assert occupied_days(t, t) == 0

    def test_inverted_dates(self):
        with pytest.raises(DateInconsistencyError):
            occupied_days(datetime(2025, 1, 3), datetime(2025, 1, 1))


class TestBedCharge:
    def test_lump_line(self):
        ch = build_bed_charge(_bed(), ROOM, datetime(2025, 1, 1, 10),
                              datetime(2025, 1, 4, 9))
        assert ch.category == "ICU West"
        assert ch.rate_key == "ICU"
        assert ch.quantity == Decimal(3)
        assert ch.amount == Decimal("3600.00")
        assert ch.details["daysOccupied"] == 3
        assert ch.details["bedNumber"] == "B-7"
        assert not ch.is_recurring
        assert ch.line_key.startswith("DISCHARGE:7:")

    def test_missing_room(self):
        with pytest.raises(MissingDependencyError):
            build_bed_charge(_bed(), None, datetime(2025, 1, 1),
                             datetime(2025, 1, 2))

    def test_missing_assignment(self):
        with pytest.raises(MissingDependencyError):
            build_bed_charge(_bed(), ROOM, None, datetime(2025, 1, 2))

    def test_missing_daily_rate(self):
        with pytest.raises(MissingRateError):
            build_bed_charge(_bed(daily_rate=None), ROOM, datetime(2025, 1, 1),
                             datetime(2025, 1, 2))

    def test_zero_daily_rate_is_unconfigured(self):
        with pytest.raises(MissingRateError):
            build_bed_charge(_bed(daily_rate=Decimal("0")), ROOM,
                             datetime(2025, 1, 1), datetime(2025, 1, 2))


class TestDailyRoomCharge:
    def test_recurring_line_keyed_by_date(self):
        rate = ResolvedRate(category="ICU", rate=Decimal("900.00"),
                            scope="hospital",
                            additional_details={"nursing": "1:1"})
        ch = build_daily_room_charge(_bed(), ROOM, date(2025, 1, 2), rate)
        assert ch.category == DAILY_ROOM_CATEGORY
        assert ch.line_key == "Room Charges daily:2025-01-02"
        assert ch.billed_date == date(2025, 1, 2)
        assert ch.is_recurring
        assert ch.rate_key == "ICU"
        assert ch.details["roomDetails"] == {"nursing": "1:1"}
        assert ch.details["totalCharge"] == 900.0


class TestConsultationCharge:
    def test_uses_department_rate(self, db, seed):
        seed.add_rate(CONSULTATION_CATEGORY, 500)
        seed.add_rate(CONSULTATION_CATEGORY, 650, department=seed.department)
        c = seed.add_consultation(seed.add_patient(), "CASE-1")
        ch = build_consultation_charge(c, RateResolver(db, seed.hospital.id),
                                       HOSPITAL_PAYER, doctor_name="Dr. Rao")
        assert ch.rate == Decimal("650.00")
        assert ch.line_key == f"CONSULT:{c.id}"
        assert ch.details["doctor"] == "Dr. Rao"
        assert ch.details["consultationData"] == {"diagnosis": "Fever"}

    def test_no_department(self, db, seed):
        seed.add_rate(CONSULTATION_CATEGORY, 500)
        c = seed.add_consultation(seed.add_patient(), "CASE-1", department=None)
        with pytest.raises(MissingDependencyError):
            build_consultation_charge(c, RateResolver(db, seed.hospital.id),
                                      HOSPITAL_PAYER)

    def test_no_rate_is_not_zero(self, db, seed):
        c = seed.add_consultation(seed.add_patient(), "CASE-1")
        with pytest.raises(MissingRateError):
            build_consultation_charge(c, RateResolver(db, seed.hospital.id),
                                      HOSPITAL_PAYER)


class TestExpenseCharge:
    def test_manual_line(self):
        ch = build_expense_charge("Ambulance", "750", 1)
        assert ch.is_manual
        assert ch.rate_key is None
        assert ch.line_key is None
        assert ch.amount == Decimal("750.00")

    @pytest.mark.parametrize("desc,amount,qty", [("", 10, 1), ("X", -1, 1),
                                                 ("X", 10, 0)])
    def test_rejects_bad_input(self, desc, amount, qty):
        with pytest.raises(BillingValidationError):
            build_expense_charge(desc, amount, qty)
