"""Shared fixtures: in-memory SQLite schema per test plus seed helpers."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("TIMEZONE", "Asia/Kolkata")

from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from carebill.db.base import Base
from carebill.models.billing import RateCatalogEntry
from carebill.models.hospital import Department, Doctor, Hospital
from carebill.models.ipd import Admission, Bed, MedicationRecord, Room
from carebill.models.opd import Appointment, Consultation
from carebill.models.patient import Patient
from carebill.models.payer import InsuranceCompany


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(bind=engine, autoflush=False)
    session = Session()
    yield session
    session.close()


class Seed:
    """Small factory for the clinical records billing reads."""

    def __init__(self, db):
        self.db = db
        self.hospital = Hospital(name="City Care", code="CITY")
        db.add(self.hospital)
        db.flush()
        self.department = self.add_department("General Medicine")
        self.doctor = Doctor(hospital_id=self.hospital.id,
                             department_id=self.department.id,
                             name="Dr. Rao",
                             specialization="Physician")
        db.add(self.doctor)
        db.commit()

    def _save(self, row):
        self.db.add(row)
        self.db.commit()
        return row

    def add_department(self, name):
        return self._save(Department(hospital_id=self.hospital.id, name=name))

    def add_patient(self, name="Asha", phone="9000000001"):
        return self._save(
            Patient(hospital_id=self.hospital.id, name=name, phone=phone))

    def add_insurer(self, name="Star Health"):
        return self._save(
            InsuranceCompany(hospital_id=self.hospital.id, name=name))

    def add_rate(self, category, rate, *, insurer=None, department=None,
                 service_name=None, details=None):
        return self._save(
            RateCatalogEntry(
                hospital_id=self.hospital.id,
                insurer_id=insurer.id if insurer else None,
                department_id=department.id if department else None,
                service_name=service_name,
                category=category,
                rate=Decimal(str(rate)),
                additional_details=details,
                is_active=True,
            ))

    def add_appointment(self, patient, case_id):
        return self._save(
            Appointment(case_id=case_id,
                        hospital_id=self.hospital.id,
                        patient_id=patient.id,
                        doctor_id=self.doctor.id,
                        department_id=self.department.id))

    def add_consultation(self, patient, case_id, *, department="default",
                         data=None):
        appt = self.add_appointment(patient, case_id)
        dept = self.department if department == "default" else department
        return self._save(
            Consultation(case_id=case_id,
                         hospital_id=self.hospital.id,
                         appointment_id=appt.id,
                         patient_id=patient.id,
                         doctor_id=self.doctor.id,
                         department_id=dept.id if dept else None,
                         consultation_data=data or {"diagnosis": "Fever"}))

    def add_room_with_bed(self, *, name="Ward 3B", room_type="Deluxe",
                          bed_number="B-1", daily_rate=None, department=None):
        room = self._save(
            Room(hospital_id=self.hospital.id,
                 department_id=department.id if department else None,
                 name=name,
                 room_type=room_type))
        bed = self._save(
            Bed(hospital_id=self.hospital.id,
                room_id=room.id,
                bed_number=bed_number,
                bed_type="Standard",
                status="Available",
                daily_rate=(Decimal(str(daily_rate))
                            if daily_rate is not None else None),
                features={"ac": True}))
        return room, bed

    def add_admission(self, patient, case_id, *, insurer=None,
                      approval="pending"):
        return self._save(
            Admission(case_id=case_id,
                      hospital_id=self.hospital.id,
                      patient_id=patient.id,
                      doctor_id=self.doctor.id,
                      status="Requested",
                      has_insurance=insurer is not None,
                      insurer_id=insurer.id if insurer else None,
                      insurance_approved=approval))

    def add_medication(self, patient, case_id, medication="Paracetamol"):
        return self._save(
            MedicationRecord(case_id=case_id,
                             hospital_id=self.hospital.id,
                             patient_id=patient.id,
                             medication=medication,
                             dose="500mg",
                             route="Oral",
                             time="08:00",
                             date=datetime(2025, 1, 1, 8, 0)))


@pytest.fixture
def seed(db):
    return Seed(db)


@pytest.fixture
def admitted(db, seed):
    """Self-pay patient admitted to a Deluxe bed on 2025-01-01 10:00."""
    from carebill.services.billing_workflows import admit_to_bed

    patient = seed.add_patient()
    room, bed = seed.add_room_with_bed()
    seed.add_admission(patient, "CASE-IPD-1")
    admit_to_bed(db, "CASE-IPD-1", bed_id=bed.id,
                 admitted_at=datetime(2025, 1, 1, 10, 0))
    return {"patient": patient, "room": room, "bed": bed,
            "case_id": "CASE-IPD-1", "day1": date(2025, 1, 1)}
