from __future__ import annotations
from datetime import datetime
from sqlalchemy import (Column, Integer, String, DateTime, Date, ForeignKey,
                        Boolean, Numeric, JSON, Index, UniqueConstraint)
from sqlalchemy.orm import relationship
from carebill.db.base import Base

# ---------------------------------------------------------------------
# IPD Masters
# ---------------------------------------------------------------------


class Room(Base):
    __tablename__ = "ipd_rooms"
    __table_args__ = (
        Index("ix_ipd_rooms_hospital", "hospital_id"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
        },
    )

    id = Column(Integer, primary_key=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    department_id = Column(Integer,
                           ForeignKey("departments.id"),
                           nullable=True)
    # display name printed on the discharge room line ("Ward 3B")
    name = Column(String(100), nullable=False)
    # rate key in the catalog ("Deluxe", "ICU", "General")
    room_type = Column(String(60), default="General")
    is_active = Column(Boolean, default=True)

    beds = relationship("Bed", back_populates="room")


class Bed(Base):
    __tablename__ = "ipd_beds"
    __table_args__ = (
        Index("ix_ipd_beds_patient_status", "assigned_patient_id", "status"),
        {
            "mysql_engine": "InnoDB",
            "mysql_charset": "utf8mb4",
        },
    )

    id = Column(Integer, primary_key=True)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    room_id = Column(Integer,
                     ForeignKey("ipd_rooms.id"),
                     nullable=False,
                     index=True)
    bed_number = Column(String(30), nullable=False)
    bed_type = Column(String(30), nullable=True)
    # Available | Occupied | Reserved | Under Maintenance
    status = Column(String(20), default="Available", nullable=False)
    assigned_patient_id = Column(Integer,
                                 ForeignKey("patients.id"),
                                 nullable=True)
    assigned_at = Column(DateTime, nullable=True)
    discharged_at = Column(DateTime, nullable=True)
    features = Column(JSON, nullable=True)
    # None until configured; a rate of 0 is treated the same way
    daily_rate = Column(Numeric(12, 2), nullable=True)

    room = relationship("Room", back_populates="beds")


# ---------------------------------------------------------------------
# Admission (one per case) with the insurance sub-record
# ---------------------------------------------------------------------


class Admission(Base):
    __tablename__ = "ipd_admissions"
    __table_args__ = (UniqueConstraint("case_id",
                                       name="uq_ipd_admission_case"), )

    id = Column(Integer, primary_key=True)
    case_id = Column(String(64), nullable=False)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    patient_id = Column(Integer,
                        ForeignKey("patients.id"),
                        nullable=False,
                        index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    bed_id = Column(Integer, ForeignKey("ipd_beds.id"), nullable=True)

    admission_date = Column(Date, nullable=True)
    admitted_at = Column(DateTime, nullable=True)
    discharged_at = Column(DateTime, nullable=True)
    status = Column(String(20), default="Requested")  # Requested/Admitted/Discharged

    # insurance sub-record
    has_insurance = Column(Boolean, default=False)
    insurer_id = Column(Integer,
                        ForeignKey("insurance_companies.id"),
                        nullable=True)
    policy_number = Column(String(64), nullable=True)
    insurance_approved = Column(String(16), default="pending")  # pending/approved/rejected
    amount_approved = Column(Numeric(12, 2), default=0)

    insurer = relationship("InsuranceCompany")
    bed = relationship("Bed")


class MedicationRecord(Base):
    __tablename__ = "ipd_medication_records"
    __table_args__ = (Index("ix_ipd_medication_case", "case_id"), )

    id = Column(Integer, primary_key=True)
    case_id = Column(String(64), nullable=False)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    medication = Column(String(191), nullable=False)
    dose = Column(String(60), nullable=False)
    route = Column(String(60), nullable=False)
    time = Column(String(20), nullable=False)
    date = Column(DateTime, default=datetime.utcnow)
    given_by = Column(String(120), nullable=True)
    notes = Column(String(255), nullable=True)
    # Scheduled | Rescheduled | Given
    status = Column(String(20), default="Scheduled", nullable=False)
    given_at = Column(DateTime, nullable=True)
