# FILE: carebill/models/opd.py
from __future__ import annotations

from datetime import datetime
from sqlalchemy import (Column, Integer, String, DateTime, ForeignKey, JSON,
                        Index)
from sqlalchemy.orm import relationship

from carebill.db.base import Base


class Appointment(Base):
    """
    Source of case identity. case_id threads the episode of care through
    consultations, admission and billing.
    """
    __tablename__ = "appointments"
    __table_args__ = (Index("ix_appointments_case", "case_id"), )

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(String(64), nullable=False)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    department_id = Column(Integer,
                           ForeignKey("departments.id"),
                           nullable=True)
    # Scheduled | Ongoing | Completed | Cancelled
    status = Column(String(20), default="Scheduled")
    scheduled_at = Column(DateTime, default=datetime.utcnow)

    patient = relationship("Patient")
    doctor = relationship("Doctor")


class Consultation(Base):
    __tablename__ = "consultations"
    __table_args__ = (Index("ix_consultations_case_status", "case_id",
                            "status"), )

    id = Column(Integer, primary_key=True, index=True)
    case_id = Column(String(64), nullable=False)
    hospital_id = Column(Integer, ForeignKey("hospitals.id"), nullable=False)
    appointment_id = Column(Integer,
                            ForeignKey("appointments.id"),
                            nullable=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True)
    department_id = Column(Integer,
                           ForeignKey("departments.id"),
                           nullable=True)

    # open | referred | completed
    status = Column(String(20), default="open", nullable=False)
    consultation_data = Column(JSON, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    doctor = relationship("Doctor")
    department = relationship("Department")
    appointment = relationship("Appointment")
