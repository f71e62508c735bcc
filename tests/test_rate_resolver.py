"""Rate precedence across payer scope and department."""

from decimal import Decimal

import pytest

from carebill.services.billing_errors import MissingRateError
from carebill.services.rate_resolver import (
    HOSPITAL_PAYER,
    SCOPE_HOSPITAL,
    SCOPE_INSURER,
    PayerContext,
    RateResolver,
    payer_context_for_case,
)


@pytest.fixture
def catalog(seed):
    cardio = seed.add_department("Cardiology")
    insurer = seed.add_insurer()
    seed.add_rate("Doctor Consultation", 500)
    seed.add_rate("Doctor Consultation", 700, department=cardio)
    seed.add_rate("Doctor Consultation", 400, insurer=insurer)
    seed.add_rate("Doctor Consultation", 650, insurer=insurer,
                  department=cardio)
    seed.add_rate("Medication", 0)
    return {"cardio": cardio, "insurer": insurer}


def _approved(insurer):
    return PayerContext(has_insurance=True, approval_status="approved",
                        insurer_id=insurer.id)


class TestPrecedence:
    def test_hospital_agnostic(self, db, seed, catalog):
        r = RateResolver(db, seed.hospital.id).resolve("Doctor Consultation",
                                                       HOSPITAL_PAYER)
        assert r.rate == Decimal("500.00")
        assert r.scope == SCOPE_HOSPITAL

    def test_hospital_department_beats_agnostic(self, db, seed, catalog):
        r = RateResolver(db, seed.hospital.id).resolve(
            "Doctor Consultation", HOSPITAL_PAYER, catalog["cardio"].id)
        assert r.rate == Decimal("700.00")

    def test_insurer_department_beats_hospital(self, db, seed, catalog):
        r = RateResolver(db, seed.hospital.id).resolve(
            "Doctor Consultation", _approved(catalog["insurer"]),
            catalog["cardio"].id)
        assert r.rate == Decimal("650.00")
        assert r.scope == SCOPE_INSURER
        assert r.insurance_covered is True

    def test_insurer_agnostic_beats_hospital_department(self, db, seed, catalog):
        other = seed.add_department("Orthopaedics")
        r = RateResolver(db, seed.hospital.id).resolve(
            "Doctor Consultation", _approved(catalog["insurer"]), other.id)
        assert r.rate == Decimal("400.00")

    def test_insurer_miss_falls_back_to_hospital(self, db, seed, catalog):
        r = RateResolver(db, seed.hospital.id).resolve(
            "Medication", _approved(catalog["insurer"]))
        assert r.scope == SCOPE_HOSPITAL
        assert r.rate == Decimal("0.00")

    @pytest.mark.parametrize("status", ["pending", "rejected"])
    def test_unapproved_insurance_uses_hospital(self, db, seed, catalog, status):
        payer = PayerContext(has_insurance=True, approval_status=status,
                             insurer_id=catalog["insurer"].id)
        r = RateResolver(db, seed.hospital.id).resolve("Doctor Consultation",
                                                       payer)
        assert r.rate == Decimal("500.00")

    def test_category_match_ignores_case_and_spacing(self, db, seed, catalog):
        r = RateResolver(db, seed.hospital.id).resolve("  doctor   CONSULTATION",
                                                       HOSPITAL_PAYER)
        assert r.rate == Decimal("500.00")


class TestMisses:
    def test_missing_rate_raises(self, db, seed, catalog):
        with pytest.raises(MissingRateError) as exc:
            RateResolver(db, seed.hospital.id).resolve("MRI", HOSPITAL_PAYER)
        assert "MRI" in str(exc.value)

    def test_other_hospital_catalog_is_invisible(self, db, seed, catalog):
        assert RateResolver(db, seed.hospital.id + 1).lookup(
            "Doctor Consultation", HOSPITAL_PAYER) is None


class TestRateMap:
    def test_single_scope_only(self, db, seed, catalog):
        rates = RateResolver(db, seed.hospital.id).rate_map(
            _approved(catalog["insurer"]))
        assert all(r.scope == SCOPE_INSURER for r in rates.values())
        assert len(rates) == 2


class TestPayerContext:
    def test_no_admission_is_hospital(self, db, seed):
        assert payer_context_for_case(db, "NOPE") == HOSPITAL_PAYER

    def test_from_admission(self, db, seed):
        patient = seed.add_patient()
        insurer = seed.add_insurer()
        seed.add_admission(patient, "C-1", insurer=insurer, approval="Approved")
        payer = payer_context_for_case(db, "C-1")
        assert payer.uses_insurer
        assert payer.insurer_id == insurer.id
